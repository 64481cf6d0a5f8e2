"""Tests for JWT issue and validation."""

from datetime import timedelta
from uuid import uuid4

import jwt
import pytest

from plantlife.auth import create_access_token, decode_access_token
from plantlife.config import Settings
from plantlife.exceptions import UnauthenticatedError
from plantlife.utils import utcnow


@pytest.fixture
def auth_settings() -> Settings:
    return Settings(jwt_secret_key="unit-test-secret", _env_file=None)


class TestTokens:
    def test_round_trip(self, auth_settings):
        user_id = uuid4()
        token = create_access_token(user_id, auth_settings)
        assert decode_access_token(token, auth_settings) == user_id

    def test_wrong_secret(self, auth_settings):
        token = create_access_token(uuid4(), auth_settings)
        other = Settings(jwt_secret_key="another-secret", _env_file=None)
        with pytest.raises(UnauthenticatedError, match="Invalid token"):
            decode_access_token(token, other)

    def test_expired(self, auth_settings):
        payload = {"sub": str(uuid4()), "exp": utcnow() - timedelta(minutes=1), "type": "access"}
        token = jwt.encode(payload, auth_settings.jwt_secret_key, algorithm="HS256")
        with pytest.raises(UnauthenticatedError, match="expired"):
            decode_access_token(token, auth_settings)

    def test_wrong_type(self, auth_settings):
        payload = {"sub": str(uuid4()), "exp": utcnow() + timedelta(minutes=5), "type": "refresh"}
        token = jwt.encode(payload, auth_settings.jwt_secret_key, algorithm="HS256")
        with pytest.raises(UnauthenticatedError, match="type"):
            decode_access_token(token, auth_settings)

    def test_bad_subject(self, auth_settings):
        payload = {"sub": "not-a-uuid", "exp": utcnow() + timedelta(minutes=5), "type": "access"}
        token = jwt.encode(payload, auth_settings.jwt_secret_key, algorithm="HS256")
        with pytest.raises(UnauthenticatedError, match="subject"):
            decode_access_token(token, auth_settings)
