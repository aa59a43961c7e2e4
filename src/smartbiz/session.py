from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .advisor import BusinessAdvisor, Conversation
from .config import StoreSettings
from .domain.models import User
from .errors import AuthError
from .logging import get_logger
from .state import ShopStateController
from .store.auth import AuthClient, AuthSession
from .store.client import StoreClient
from .store.repository import ShopRepository


LOG = get_logger("session")

RepositoryFactory = Callable[[AuthSession], ShopRepository]

# Refresh this many seconds before the access token runs out.
REFRESH_LEEWAY = 60


def store_repository_factory(settings: StoreSettings) -> RepositoryFactory:
    """Repositories whose requests carry the signed-in user's token (RLS scope)."""

    def _factory(auth: AuthSession) -> ShopRepository:
        return ShopRepository(StoreClient(settings.url, settings.anon_key, auth.access_token, timeout=settings.timeout))

    return _factory


@dataclass
class ShopSession:
    """Everything that belongs to one signed-in user."""

    auth: AuthSession
    user: User
    controller: ShopStateController
    conversation: Conversation


class SessionRegistry:
    """Signed-in sessions keyed by access token."""

    def __init__(self, auth_client: AuthClient, repository_factory: RepositoryFactory, advisor: BusinessAdvisor) -> None:
        self.auth_client = auth_client
        self.repository_factory = repository_factory
        self.advisor = advisor
        self._sessions: Dict[str, ShopSession] = {}
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    def _open(self, auth: AuthSession) -> ShopSession:
        session = ShopSession(
            auth=auth,
            user=User.from_auth_user(auth.user),
            controller=ShopStateController(self.repository_factory(auth)),
            conversation=Conversation(self.advisor),
        )
        session.controller.load()
        with self._lock:
            self._sessions[auth.access_token] = session
        LOG.info(f"Opened session for {session.user.name} ({session.user.shop_name})")
        return session

    def sign_in(self, email: str, password: str) -> ShopSession:
        return self._open(self.auth_client.sign_in(email, password))

    def sign_up(self, email: str, password: str, name: str, shop_name: str) -> Optional[ShopSession]:
        """Register; returns an open session unless email confirmation is pending."""
        auth = self.auth_client.sign_up(email, password, name, shop_name)
        return self._open(auth) if auth is not None else None

    def get(self, token: Optional[str]) -> Optional[ShopSession]:
        """Session for the token handed out at sign-in, refreshed when its JWT is stale.

        The key stays the sign-in token; only the session's own access token
        rotates. Returns None (and forgets the session) when refresh fails.
        """
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
        if session is None or not self._stale(session):
            return session
        return self._refresh(token, session)

    @staticmethod
    def _stale(session: ShopSession) -> bool:
        return session.controller.session_expired or session.auth.expires_within(REFRESH_LEEWAY)

    def _refresh(self, token: str, session: ShopSession) -> Optional[ShopSession]:
        with self._refresh_lock:
            # Another request may have refreshed while we waited.
            if not self._stale(session):
                return session
            try:
                auth = self.auth_client.refresh(session.auth)
            except AuthError as e:
                LOG.warning(f"Dropping session for {session.user.name}: {e}")
                with self._lock:
                    self._sessions.pop(token, None)
                session.controller.clear()
                return None
            rejected = session.controller.session_expired
            session.auth = auth
            session.controller.repo.use_token(auth.access_token)
            session.controller.session_expired = False
        if rejected:
            session.controller.load()
        return session

    def sign_out(self, token: str) -> None:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            return
        session.controller.clear()
        try:
            self.auth_client.sign_out(session.auth)
        except AuthError as e:
            LOG.error(f"Error signing out: {e}")
