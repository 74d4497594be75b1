"""
Test admin session tokens and credential checks.
"""

import pytest

from dormside.core.config import Settings
from dormside.core.errors import ConfigurationError
from dormside.core.security import AdminSessionSigner, validate_credentials

NOW = 1_700_000_000.0


@pytest.fixture
def signer():
    return AdminSessionSigner("secret", ttl_seconds=60)


def test_issued_token_verifies(signer):
    token = signer.issue("admin", now=NOW)
    assert signer.verify(token, now=NOW + 30)


def test_expired_token_is_rejected(signer):
    token = signer.issue("admin", now=NOW)
    assert not signer.verify(token, now=NOW + 61)


def test_token_signed_with_other_secret_is_rejected(signer):
    token = AdminSessionSigner("other", ttl_seconds=60).issue("admin", now=NOW)
    assert not signer.verify(token, now=NOW)


def test_tampered_payload_is_rejected(signer):
    payload, signature = signer.issue("admin", now=NOW).split(".")
    forged = signer.issue("admin", now=NOW + 3600).split(".")[0]
    assert not signer.verify(f"{forged}.{signature}", now=NOW)
    assert payload != forged


@pytest.mark.parametrize("token", [None, "", "abc", ".", "abc.", ".abc", "a.b.c"])
def test_malformed_tokens_are_rejected(signer, token):
    assert not signer.verify(token, now=NOW)


def test_signer_requires_secret():
    with pytest.raises(ConfigurationError):
        AdminSessionSigner.from_settings(Settings(admin_session_secret=""))


def test_validate_credentials():
    settings = Settings(admin_username="admin", admin_password="hunter2")

    assert validate_credentials(settings, "admin", "hunter2")
    assert not validate_credentials(settings, "admin", "wrong")
    assert not validate_credentials(settings, "root", "hunter2")


def test_missing_credentials_are_a_configuration_error():
    with pytest.raises(ConfigurationError):
        validate_credentials(Settings(admin_username="", admin_password=""), "admin", "x")
