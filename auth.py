import abc
from typing import Optional

import bcrypt
from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings

SESSION_COOKIE = "budget_session"


class AuthenticationError(Exception):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


class AuthProvider(abc.ABC):
    """Resolves the user a request acts on behalf of."""

    @abc.abstractmethod
    def authenticate(self, request: Request) -> int:
        raise NotImplementedError


class DefaultUserAuthProvider(AuthProvider):
    """Single-user mode: every request belongs to one fixed user."""

    def __init__(self, user_id: int = 1) -> None:
        self.user_id = user_id

    def authenticate(self, request: Request) -> int:
        return self.user_id


class SignedTokenAuthProvider(AuthProvider):
    def __init__(self, secret_key: str, max_age_secs: int) -> None:
        self.max_age_secs = max_age_secs
        self._serializer = URLSafeTimedSerializer(secret_key, salt="budget-session")

    def issue_token(self, user_id: int) -> str:
        return self._serializer.dumps({"u": user_id})

    def user_id_from_token(self, token: str) -> int:
        try:
            data = self._serializer.loads(token, max_age=self.max_age_secs)
        except SignatureExpired as exc:
            raise AuthenticationError("Session expired") from exc
        except BadSignature as exc:
            raise AuthenticationError("Invalid session token") from exc
        user_id = data.get("u") if isinstance(data, dict) else None
        if not isinstance(user_id, int):
            raise AuthenticationError("Invalid session token")
        return user_id

    def authenticate(self, request: Request) -> int:
        token = _bearer_token(request) or request.cookies.get(SESSION_COOKIE)
        if not token:
            raise AuthenticationError("Not authenticated")
        return self.user_id_from_token(token)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def build_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "token":
        return SignedTokenAuthProvider(settings.secret_key, settings.token_max_age_secs)
    if settings.auth_mode == "default":
        return DefaultUserAuthProvider(settings.default_user_id)
    raise ValueError(f"Unknown auth mode {settings.auth_mode!r}")
