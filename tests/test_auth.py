import pytest
from starlette.requests import Request

from auth import (
    AuthenticationError,
    DefaultUserAuthProvider,
    SESSION_COOKIE,
    SignedTokenAuthProvider,
    build_auth_provider,
    hash_password,
    verify_password,
)
from config import Settings


def _request(headers: dict[str, str]) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "headers": raw})


def _settings(auth_mode: str) -> Settings:
    return Settings(
        database_url="sqlite://",
        timezone="UTC",
        secret_key="s3cret",
        auth_mode=auth_mode,
        default_user_id=42,
        token_max_age_secs=60,
        reminder_window_days=30,
        scheduler_enabled=False,
    )


def test_default_provider_always_returns_configured_user() -> None:
    assert DefaultUserAuthProvider(5).authenticate(_request({})) == 5


def test_signed_token_from_header_or_cookie() -> None:
    provider = SignedTokenAuthProvider("s3cret", 60)
    token = provider.issue_token(9)
    assert provider.authenticate(_request({"Authorization": f"Bearer {token}"})) == 9
    assert provider.authenticate(_request({"Cookie": f"{SESSION_COOKIE}={token}"})) == 9


def test_token_signed_with_other_secret_is_rejected() -> None:
    token = SignedTokenAuthProvider("other", 60).issue_token(9)
    with pytest.raises(AuthenticationError, match="Invalid"):
        SignedTokenAuthProvider("s3cret", 60).user_id_from_token(token)


def test_expired_token_is_rejected() -> None:
    provider = SignedTokenAuthProvider("s3cret", -1)
    with pytest.raises(AuthenticationError, match="expired"):
        provider.user_id_from_token(provider.issue_token(9))


def test_missing_token_is_rejected() -> None:
    with pytest.raises(AuthenticationError):
        SignedTokenAuthProvider("s3cret", 60).authenticate(_request({}))


def test_build_auth_provider_from_settings() -> None:
    default = build_auth_provider(_settings("default"))
    assert isinstance(default, DefaultUserAuthProvider)
    assert default.user_id == 42
    assert isinstance(build_auth_provider(_settings("token")), SignedTokenAuthProvider)
    with pytest.raises(ValueError):
        build_auth_provider(_settings("ldap"))


def test_password_hashes_verify_only_the_original_password() -> None:
    hashed = hash_password("hunter22")
    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", None)
