"""Tests for the encryption codec and password hashing."""

import base64

import pytest

from crypto import CryptoManager, PasswordManager
from exceptions import ConfigurationError, DecryptionError

from conftest import FAST_ARGON2, TEST_PEPPER


class TestEncryptionRoundTrip:
    """decrypt(encrypt(P)) == P"""

    @pytest.mark.parametrize("payload", [
        "",
        "hello",
        '{"username": "alice", "token": "abc.def.ghi"}',
        "пароль - 密码 - 🔐",
        "x" * 100_000,
    ])
    def test_text_round_trip(self, crypto, payload):
        assert crypto.decrypt(crypto.encrypt(payload)) == payload

    def test_bytes_round_trip(self, crypto):
        payload = bytes(range(256)) * 4
        assert crypto.decrypt_bytes(crypto.encrypt_bytes(payload)) == payload

    def test_fresh_iv_every_time(self, crypto):
        assert crypto.encrypt("same") != crypto.encrypt("same")

    def test_envelope_layout(self, crypto):
        raw = base64.urlsafe_b64decode(crypto.encrypt("abcd"))
        # 12-byte nonce + 4-byte ciphertext + 16-byte tag
        assert len(raw) == 12 + 4 + 16

    def test_associated_data_round_trip(self, crypto):
        envelope = crypto.encrypt("secret", associated_data=b"user:alice")
        assert crypto.decrypt(envelope, associated_data=b"user:alice") == "secret"


class TestTamperDetection:
    """Any change to an envelope makes decrypt fail"""

    def test_every_flipped_byte_is_detected(self, crypto):
        raw = base64.urlsafe_b64decode(crypto.encrypt("sensitive payment data"))
        failures = 0
        for i in range(len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0x01
            envelope = base64.urlsafe_b64encode(bytes(tampered)).decode()
            with pytest.raises(DecryptionError):
                crypto.decrypt(envelope)
            failures += 1
        assert failures == len(raw)

    def test_truncated_envelope(self, crypto):
        raw = base64.urlsafe_b64decode(crypto.encrypt("data"))
        for cut in (0, 5, 12, 27, len(raw) - 1):
            envelope = base64.urlsafe_b64encode(raw[:cut]).decode()
            with pytest.raises(DecryptionError):
                crypto.decrypt(envelope)

    @pytest.mark.parametrize("garbage", ["", "not-base64!!", "abc", "====", "iv:ct:tag"])
    def test_malformed_envelope(self, crypto, garbage):
        with pytest.raises(DecryptionError):
            crypto.decrypt(garbage)

    def test_key_change(self, crypto):
        envelope = crypto.encrypt("data")
        other = CryptoManager(CryptoManager.generate_key())
        with pytest.raises(DecryptionError):
            other.decrypt(envelope)

    def test_associated_data_mismatch(self, crypto):
        envelope = crypto.encrypt("data", associated_data=b"token:one")
        with pytest.raises(DecryptionError):
            crypto.decrypt(envelope, associated_data=b"token:two")
        with pytest.raises(DecryptionError):
            crypto.decrypt(envelope)

    def test_error_message_is_generic(self, crypto):
        with pytest.raises(DecryptionError) as exc:
            crypto.decrypt("garbage")
        assert exc.value.message == "Stored record is unreadable"


class TestKeyConfiguration:
    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            CryptoManager(None)
        with pytest.raises(ConfigurationError):
            CryptoManager("")

    def test_wrong_key_length(self):
        short = base64.urlsafe_b64encode(b"\x00" * 16).decode()
        with pytest.raises(ConfigurationError):
            CryptoManager(short)

    def test_generated_key_is_usable(self):
        key = CryptoManager.generate_key()
        assert len(base64.urlsafe_b64decode(key)) == 32
        CryptoManager(key)


class TestPasswordManager:
    def test_verify_correct_password(self, passwords):
        digest = passwords.hash("secret1")
        assert passwords.verify("secret1", digest) is True

    def test_verify_wrong_password(self, passwords):
        digest = passwords.hash("secret1")
        assert passwords.verify("secret2", digest) is False

    def test_digest_is_argon2id_and_not_plaintext(self, passwords):
        digest = passwords.hash("secret1")
        assert digest.startswith("$argon2id$")
        assert "secret1" not in digest

    def test_equal_passwords_get_distinct_digests(self, passwords):
        assert passwords.hash("secret1") != passwords.hash("secret1")

    def test_pepper_is_part_of_the_hash(self, passwords):
        digest = passwords.hash("secret1")
        other = PasswordManager("another-pepper", **FAST_ARGON2)
        assert other.verify("secret1", digest) is False

    def test_malformed_digest(self, passwords):
        assert passwords.verify("secret1", "not-a-hash") is False

    def test_needs_rehash_on_parameter_change(self, passwords):
        digest = passwords.hash("secret1")
        assert passwords.needs_rehash(digest) is False
        stronger = PasswordManager(TEST_PEPPER, time_cost=2, memory_cost=1024, parallelism=1)
        assert stronger.needs_rehash(digest) is True
        assert stronger.verify("secret1", digest) is True

    def test_missing_pepper(self):
        with pytest.raises(ConfigurationError):
            PasswordManager("")
