import os
import base64
import binascii
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError

from exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # NIST recommended IV length for GCM
TAG_SIZE = 16


class CryptoManager:
    """
    Handles symmetrical encryption for data at rest (accounts, sessions, payments)
    using AES-256-GCM.

    Envelope format: urlsafe_b64(nonce || ciphertext || tag)
    """

    def __init__(self, key: Union[str, bytes]):
        if not key:
            raise ConfigurationError("Encryption key is not configured")
        try:
            self.key = base64.urlsafe_b64decode(key)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"Invalid Encryption Key configuration: {e}")
        if len(self.key) != 32:
            raise ConfigurationError("Key must be 32 bytes (256 bits) for AES-256")

    @staticmethod
    def generate_key() -> str:
        """Fresh key suitable for the ENCRYPTION_KEY environment variable"""
        return base64.urlsafe_b64encode(os.urandom(32)).decode()

    def encrypt_bytes(self, plaintext: bytes, associated_data: Optional[bytes] = None) -> str:
        """
        Encrypts raw bytes using AES-GCM.
        IV is generated randomly for every operation.
        """
        iv = os.urandom(NONCE_SIZE)
        encryptor = Cipher(
            algorithms.AES(self.key),
            modes.GCM(iv),
            backend=default_backend()
        ).encryptor()
        if associated_data:
            encryptor.authenticate_additional_data(associated_data)

        ciphertext = encryptor.update(plaintext) + encryptor.finalize()

        return base64.urlsafe_b64encode(iv + ciphertext + encryptor.tag).decode()

    def decrypt_bytes(self, envelope: Union[str, bytes], associated_data: Optional[bytes] = None) -> bytes:
        """
        Decrypts an AES-GCM envelope.
        Verifies authentication tag to prevent tampering.
        """
        try:
            raw = base64.urlsafe_b64decode(envelope)
        except (binascii.Error, ValueError, TypeError):
            raise DecryptionError()

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError()

        iv, ciphertext, tag = raw[:NONCE_SIZE], raw[NONCE_SIZE:-TAG_SIZE], raw[-TAG_SIZE:]
        decryptor = Cipher(
            algorithms.AES(self.key),
            modes.GCM(iv, tag),
            backend=default_backend()
        ).decryptor()
        if associated_data:
            decryptor.authenticate_additional_data(associated_data)

        try:
            return decryptor.update(ciphertext) + decryptor.finalize()
        except InvalidTag:
            # Generic error: never say whether the key or the data is wrong
            raise DecryptionError()

    def encrypt(self, plaintext: str, associated_data: Optional[bytes] = None) -> str:
        return self.encrypt_bytes(plaintext.encode('utf-8'), associated_data)

    def decrypt(self, envelope: Union[str, bytes], associated_data: Optional[bytes] = None) -> str:
        data = self.decrypt_bytes(envelope, associated_data)
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError()


class PasswordManager:
    """
    One-way credential hashing.

    The password is concatenated with a static server-side pepper before hashing.
    Argon2id adds a random per-record salt, so equal passwords never share a digest.
    """

    def __init__(self, pepper: str, time_cost: int = 3, memory_cost: int = 65536,
                 parallelism: int = 4, hash_len: int = 32, salt_len: int = 16):
        if not pepper:
            raise ConfigurationError("Password pepper is not configured")
        self.pepper = pepper
        self.ph = PasswordHasher(
            time_cost=time_cost,      # Protects against brute-force
            memory_cost=memory_cost,  # Protects against ASIC/FPGA
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len
        )

    def hash(self, password: str) -> str:
        return self.ph.hash(password + self.pepper)

    def verify(self, password: str, digest: str) -> bool:
        # argon2 compares in constant time
        try:
            return self.ph.verify(digest, password + self.pepper)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            logger.warning("Stored password hash could not be verified")
            return False

    def needs_rehash(self, digest: str) -> bool:
        try:
            return self.ph.check_needs_rehash(digest)
        except InvalidHashError:
            return True
