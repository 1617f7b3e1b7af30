"""Tests for bearer token handling."""

import pytest
from itsdangerous import URLSafeTimedSerializer

from src.core.config import settings
from src.core.errors import UnauthorizedError
from src.domain.user import Role
from src.services import identity_service


@pytest.fixture(autouse=True)
def secret(monkeypatch):
    monkeypatch.setattr(settings, "secret_key", "unit-test-secret")


@pytest.mark.unit
class TestTokens:
    def test_round_trip(self):
        assert identity_service.read_token(identity_service.issue_token("V1")) == "V1"

    def test_tampered_token_rejected(self):
        token = identity_service.issue_token("V1")
        with pytest.raises(UnauthorizedError):
            identity_service.read_token(token[:-2] + "xx")

    def test_token_signed_with_other_secret_rejected(self):
        forged = URLSafeTimedSerializer("other", salt=identity_service.TOKEN_SALT).dumps({"sub": "A1"})
        with pytest.raises(UnauthorizedError):
            identity_service.read_token(forged)

    def test_expired_token_rejected(self, monkeypatch):
        token = identity_service.issue_token("V1")
        monkeypatch.setattr(settings, "token_max_age_seconds", -1)
        with pytest.raises(UnauthorizedError, match="expired"):
            identity_service.read_token(token)

    def test_token_without_subject_rejected(self):
        token = URLSafeTimedSerializer("unit-test-secret", salt=identity_service.TOKEN_SALT).dumps({"user": "V1"})
        with pytest.raises(UnauthorizedError):
            identity_service.read_token(token)


@pytest.mark.unit
class TestResolve:
    async def test_resolves_actor(self, patched_db):
        actor = await identity_service.resolve(identity_service.issue_token("V1"))
        assert actor.id == "V1"
        assert actor.role == Role.VENDOR
        assert actor.name == "Vera Vendor"

    async def test_missing_token(self, patched_db):
        with pytest.raises(UnauthorizedError, match="no token"):
            await identity_service.resolve(None)

    async def test_unknown_user(self, patched_db):
        with pytest.raises(UnauthorizedError, match="user not found"):
            await identity_service.resolve(identity_service.issue_token("ghost"))

    async def test_deactivated_user(self, patched_db):
        await patched_db.update_record("users", "C1", {"is_active": False})
        with pytest.raises(UnauthorizedError, match="deactivated"):
            await identity_service.resolve(identity_service.issue_token("C1"))

    async def test_role_change_applies_to_existing_token(self, patched_db):
        token = identity_service.issue_token("C1")
        await patched_db.update_record("users", "C1", {"role": "vendor"})
        assert (await identity_service.resolve(token)).role == Role.VENDOR
