"""
Unit tests for the Session context.
"""

from unittest.mock import patch

import pytest

from bridgebox.core.exceptions import ConfigError
from bridgebox.security.kdf import bucket_salt
from bridgebox.security.keys import KeyPair
from bridgebox.security.session import Session


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def mock_kdf():
    with patch("bridgebox.security.session.derive_master_key") as mock:
        mock.return_value = b"\x01" * 32
        yield mock


# ==============================================================================
# Tests: key material
# ==============================================================================

def test_master_secret_prefers_bucket_key(bridge):
    s = Session(bridge, bucket_id="b1", key_material="mine")
    assert s.master_secret("published") == "published"
    assert s.master_secret("") == "mine"


def test_master_secret_falls_back_to_keypair(bridge):
    kp = KeyPair()
    s = Session(bridge, keypair=kp)
    assert s.master_secret() == kp.get_private_key()


def test_master_secret_none_without_material(bridge):
    assert Session(bridge).master_secret() is None


def test_unlock_with_key(bridge):
    s = Session(bridge)
    s.unlock_with_key("ab" * 32)
    assert s.master_secret() == "ab" * 32


def test_unlock_with_password_uses_bucket_salt(bridge, mock_kdf):
    s = Session(bridge, bucket_id="b1")
    s.unlock_with_password("hunter2")
    args, kwargs = mock_kdf.call_args
    assert args == ("hunter2", bucket_salt("b1"))
    assert s.master_secret() == "01" * 32
    assert s.key_material is None
    assert s.kdf_params["salt"] == bucket_salt("b1").hex()


def test_unlock_with_password_explicit_salt(bridge, mock_kdf):
    s = Session(bridge)
    s.unlock_with_password(b"pw", salt=b"s" * 16, time_cost=1)
    assert mock_kdf.call_args[0][1] == b"s" * 16
    assert s.key_material == "01" * 32
    assert s.kdf_params["time"] == 1


def test_unlock_without_bucket_defers_derivation(bridge, mock_kdf):
    s = Session(bridge)
    s.unlock_with_password("pw")
    assert not mock_kdf.called
    with pytest.raises(ConfigError):
        s.master_secret()


def test_passphrase_key_is_salted_per_bucket(bridge):
    with patch("bridgebox.security.session.derive_master_key") as mock:
        mock.side_effect = lambda keypass, salt, **kw: salt * 2
        s = Session(bridge, bucket_id="b1")
        s.unlock_with_password("pw")
        own = s.master_secret()
        other = s.master_secret(bucket_id="b2")
        assert s.master_secret(bucket_id="b2") == other
    assert own == (bucket_salt("b1") * 2).hex()
    assert other == (bucket_salt("b2") * 2).hex()
    assert mock.call_count == 2


def test_unlock_with_password_is_deterministic(bridge):
    a = Session(bridge, bucket_id="b1")
    b = Session(bridge, bucket_id="b1")
    for s in (a, b):
        s.unlock_with_password("pw", time_cost=1, memory_cost=8192)
    assert a.master_secret() == b.master_secret()


def test_lock_drops_material(bridge, mock_kdf):
    s = Session(bridge, key_material="k", keypair=KeyPair())
    s.unlock_with_password("pw")
    s.lock()
    assert s.master_secret(bucket_id="b1") is None


# ==============================================================================
# Tests: isolation and provisioning
# ==============================================================================

def test_for_bucket_returns_independent_session(bridge):
    s = Session(bridge, bucket_id="b1", key_material="k")
    other = s.for_bucket("b2")
    other.unlock_with_key("other")
    assert s.bucket_id == "b1" and s.key_material == "k"
    assert other.bucket_id == "b2"
    assert other.bridge is s.bridge


def test_provision_keypair_is_cached(bridge, memory_keyring):
    s = Session(bridge)
    first = s.provision_keypair()
    assert s.provision_keypair() is first
    assert memory_keyring.store[("bridgebox", "client")] == first.get_private_key()
