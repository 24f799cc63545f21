"""Caller identity: the current-user context and bearer-token authentication.

Identity is owned by an external auth service. Inside the process the
signed-in user is held by an ``AuthContext`` that subscribes to its
``IdentityProvider`` on ``start()`` and lets go on ``stop()``; workflow
operations receive the ``CurrentUser`` explicitly instead of reading a global.
Over HTTP the same user is decoded from a bearer JWT issued by that service.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import jwt
from fastapi import HTTPException, Request, status

from peerlearn.config import get_settings
from peerlearn.errors import NotAuthenticatedError
from peerlearn.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Opaque handle for the signed-in user."""

    uid: str
    display_name: str | None = None
    email: str | None = None
    photo_url: str | None = None


UserListener = Callable[[CurrentUser | None], None]


class IdentityProvider(Protocol):
    def current_user(self) -> CurrentUser | None: ...

    def on_user_changed(self, listener: UserListener) -> Callable[[], None]: ...

    async def sign_out(self) -> None: ...


class StaticIdentityProvider:
    """Identity provider holding a user set by the embedding process."""

    def __init__(self, user: CurrentUser | None = None):
        self._user = user
        self._listeners: list[UserListener] = []

    def current_user(self) -> CurrentUser | None:
        return self._user

    def on_user_changed(self, listener: UserListener) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self._user)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_user(self, user: CurrentUser | None) -> None:
        self._user = user
        for listener in list(self._listeners):
            listener(user)

    async def sign_out(self) -> None:
        self.set_user(None)


class AuthContext:
    """Current-user provider with an explicit start/stop lifecycle."""

    def __init__(self, provider: IdentityProvider):
        self._provider = provider
        self._unsubscribe: Callable[[], None] | None = None
        self.user: CurrentUser | None = None
        self.loading = True

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._provider.on_user_changed(self._on_user_changed)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_user_changed(self, user: CurrentUser | None) -> None:
        self.user = user
        self.loading = False
        logger.debug("auth_user_changed", user_id=user.uid if user else None)

    def require_user(self) -> CurrentUser:
        if self.user is None:
            raise NotAuthenticatedError()
        return self.user

    async def logout(self) -> None:
        await self._provider.sign_out()

    def __enter__(self) -> "AuthContext":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


def create_access_token(
    user: CurrentUser,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a token the way the auth service does. Used by tests and the seed script."""
    settings = get_settings()
    payload = {
        "sub": user.uid,
        "exp": datetime.now(timezone.utc) + expires_in,
        "type": "access",
    }
    if user.display_name:
        payload["name"] = user.display_name
    if user.email:
        payload["email"] = user.email
    if user.photo_url:
        payload["picture"] = user.photo_url
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> CurrentUser:
    """Decode and validate a token. Raises HTTPException on failure."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    uid = payload.get("sub")
    if not uid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return CurrentUser(
        uid=uid,
        display_name=payload.get("name"),
        email=payload.get("email"),
        photo_url=payload.get("picture"),
    )


async def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: extract and validate the bearer token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )

    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Empty token",
        )
    return decode_token(token)
