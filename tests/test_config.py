"""
Tests for environment-driven settings in `careconnect/config.py`.
"""
import pytest

from careconnect.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DATABASE_URL", "SECRET_KEY", "ACCESS_TOKEN_EXPIRE_MINUTES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.database_url == "sqlite:///./careconnect.db"
    assert settings.algorithm == "HS256"
    assert settings.access_token_expire_minutes == 60 * 24
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://care:care@db/careconnect")
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")
    monkeypatch.setenv("MEDIA_URL", "/audio")

    settings = Settings(_env_file=None)

    assert settings.database_url == "postgresql://care:care@db/careconnect"
    assert settings.access_token_expire_minutes == 15
    assert settings.media_url == "/audio"


def test_invalid_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "soon")
    with pytest.raises(ValueError):
        Settings(_env_file=None)
