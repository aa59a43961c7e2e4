import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

DEFAULT_ADVISOR_MODEL = "gpt-4o-mini"
DEFAULT_HTTP_TIMEOUT = 30


@dataclass(frozen=True)
class StoreSettings:
    """Where the hosted database lives and the public key to reach it."""

    url: str
    anon_key: str
    timeout: int = DEFAULT_HTTP_TIMEOUT


@dataclass(frozen=True)
class AdvisorSettings:
    api_key: Optional[str]
    model: str = DEFAULT_ADVISOR_MODEL
    base_url: Optional[str] = None
    timeout: int = DEFAULT_HTTP_TIMEOUT


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return the key/value pairs of the nearest .env; never mutates os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: v.strip() for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _lookup(key: str, env: Dict[str, str]) -> Optional[str]:
    v = os.environ.get(key) or env.get(key) or env.get(key.lower())
    return v.strip() if v and v.strip() else None


def _timeout(env: Dict[str, str]) -> int:
    raw = _lookup("SMARTBIZ_HTTP_TIMEOUT", env)
    if raw is None:
        return DEFAULT_HTTP_TIMEOUT
    try:
        return max(1, int(raw))
    except ValueError:
        log.warning(f"SMARTBIZ_HTTP_TIMEOUT={raw!r} is not an integer; using {DEFAULT_HTTP_TIMEOUT}s")
        return DEFAULT_HTTP_TIMEOUT


def load_store_settings(dotenv_dir: str) -> Optional[StoreSettings]:
    """Return Supabase settings from env or .env, or None when incomplete."""
    env = _read_dotenv(dotenv_dir)
    url = _lookup("SUPABASE_URL", env)
    key = _lookup("SUPABASE_ANON_KEY", env)
    if not url or not key:
        log.warning("SUPABASE_URL / SUPABASE_ANON_KEY not found in env or .env")
        return None
    log.info(f"Using Supabase project at {url}")
    return StoreSettings(url=url.rstrip("/"), anon_key=key, timeout=_timeout(env))


def load_advisor_settings(dotenv_dir: str) -> AdvisorSettings:
    """Return completion API settings.

    - OPENAI_API_KEY may be missing; the advisor then answers with its
      fallback message.
    - OPENAI_BASE_URL points the SDK at any OpenAI-compatible endpoint.
    """
    env = _read_dotenv(dotenv_dir)
    api_key = _lookup("OPENAI_API_KEY", env)
    if not api_key:
        log.info("OPENAI_API_KEY not set; advisor will be unavailable")
    return AdvisorSettings(
        api_key=api_key,
        model=_lookup("SMARTBIZ_ADVISOR_MODEL", env) or DEFAULT_ADVISOR_MODEL,
        base_url=_lookup("OPENAI_BASE_URL", env),
        timeout=_timeout(env),
    )
