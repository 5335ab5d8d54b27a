"""
Tests for credential secret encryption and masking.
"""

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from affilai.config import get_settings
from affilai.crypto import decrypt_value, encrypt_secrets, encrypt_value, mask_secret, reset_cipher
from affilai.models import AffiliateCredential
from affilai.stores import CredentialStore


@pytest.fixture
def fernet_key(monkeypatch):
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(get_settings(), "encryption_key", key)
    reset_cipher()
    yield key
    monkeypatch.undo()
    reset_cipher()


def test_round_trip_with_key(fernet_key):
    token = encrypt_value("sk-live-abcdef1234")
    assert token != "sk-live-abcdef1234"
    assert decrypt_value(token) == "sk-live-abcdef1234"


def test_without_key_values_pass_through():
    reset_cipher()
    assert encrypt_value("plain") == "plain"
    assert decrypt_value("plain") == "plain"


def test_empty_values_are_untouched(fernet_key):
    assert encrypt_value(None) is None
    assert encrypt_value("") == ""
    assert decrypt_value(None) is None


def test_value_stored_before_key_is_returned_as_is(fernet_key):
    assert decrypt_value("legacy-plaintext") == "legacy-plaintext"


def test_mask_secret_shows_last_four(fernet_key):
    assert mask_secret(encrypt_value("sk-abcdef1234")) == "*********1234"
    assert mask_secret("abc") == "***"
    assert mask_secret(None) is None


def test_encrypt_secrets_leaves_ids_readable(fernet_key):
    fields = {"affiliate_id": "mystore-20", "api_key": "ak-123456", "api_secret": "", "notes": None}
    stored = encrypt_secrets(fields)

    assert stored["affiliate_id"] == "mystore-20"
    assert decrypt_value(stored["api_key"]) == "ak-123456"
    assert stored["api_key"] != "ak-123456"
    assert stored["api_secret"] == ""
    assert stored["notes"] is None
    assert fields["api_key"] == "ak-123456"


@pytest.mark.anyio
async def test_saved_credential_secret_is_encrypted_at_rest(fernet_key, session_factory):
    credentials = CredentialStore(session_factory)
    await credentials.save_credential("amazon", affiliate_id="mystore-20", api_key="ak-123456")

    async with session_factory() as db:
        row = (await db.execute(select(AffiliateCredential))).scalar_one()
    assert row.affiliate_id == "mystore-20"
    assert row.api_key != "ak-123456"
    assert decrypt_value(row.api_key) == "ak-123456"
