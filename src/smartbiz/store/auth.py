from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..errors import AuthError
from ..logging import get_logger


LOG = get_logger("auth")


@dataclass
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    user: Dict[str, Any]
    expires_at: Optional[float] = None  # epoch seconds

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    def expires_within(self, seconds: float) -> bool:
        return self.expires_at is not None and self.expires_at - time.time() <= seconds


class AuthClient:
    """Password sign-in/sign-up/sign-out against Supabase GoTrue."""

    def __init__(self, base_url: str, anon_key: str, *, timeout: int = 30, session: Optional[requests.Session] = None) -> None:
        self.base = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = int(timeout)
        self.s = session or requests.Session()
        self.s.headers.update({"apikey": anon_key, "Content-Type": "application/json"})

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None, *, token: Optional[str] = None, params: Optional[Dict[str, str]] = None) -> Any:
        headers = {"Authorization": f"Bearer {token or self.anon_key}"}
        try:
            r = self.s.post(f"{self.base}/auth/v1/{path}", json=payload or {}, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            LOG.error(f"auth {path} failed: {e}")
            raise AuthError(f"Could not reach the authentication service: {e}", status=502) from e
        try:
            body = r.json() if r.content else None
        except ValueError:
            body = None
        if r.status_code >= 400:
            raise AuthError.from_body(r.status_code, body)
        return body

    @staticmethod
    def _session_from(body: Any) -> Optional[AuthSession]:
        if not isinstance(body, dict) or not body.get("access_token"):
            return None
        expires_at = body.get("expires_at")
        if expires_at is None and body.get("expires_in") is not None:
            expires_at = time.time() + float(body["expires_in"])
        return AuthSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user=body.get("user") or {},
            expires_at=float(expires_at) if expires_at is not None else None,
        )

    def sign_in(self, email: str, password: str) -> AuthSession:
        body = self._post("token", {"email": email, "password": password}, params={"grant_type": "password"})
        session = self._session_from(body)
        if session is None:
            raise AuthError("Sign-in did not return a session.")
        LOG.info(f"Signed in user {session.user_id}")
        return session

    def sign_up(self, email: str, password: str, name: str, shop_name: str) -> Optional[AuthSession]:
        """Create an account. Returns a session when email confirmation is off."""
        if not name.strip() or not shop_name.strip():
            raise AuthError("Name and Shop Name are required for sign up.")
        body = self._post(
            "signup",
            {"email": email, "password": password, "data": {"full_name": name, "shop_name": shop_name}},
        )
        session = self._session_from(body)
        if session is None:
            LOG.info(f"Sign-up for {email} pending email confirmation")
        return session

    def refresh(self, session: AuthSession) -> AuthSession:
        """Exchange the refresh token for a new access token."""
        if not session.refresh_token:
            raise AuthError("Session expired. Please sign in again.", status=401)
        body = self._post("token", {"refresh_token": session.refresh_token}, params={"grant_type": "refresh_token"})
        fresh = self._session_from(body)
        if fresh is None:
            raise AuthError("Session refresh did not return a session.", status=401)
        if not fresh.user:
            fresh.user = session.user
        LOG.info(f"Refreshed session for user {fresh.user_id}")
        return fresh

    def sign_out(self, session: AuthSession) -> None:
        self._post("logout", token=session.access_token)
        LOG.info(f"Signed out user {session.user_id}")
