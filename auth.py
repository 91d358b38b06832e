"""
Authentication Module
Account registration, credential checks and profile lookup on top of Redis
"""

import logging
from typing import Optional

from crypto import PasswordManager
from exceptions import DecryptionError, InvalidCredentials, UsernameTaken
from models import Account, AuthenticatedUser, utcnow_iso
from store import EncryptedNamespace
from utils import Validator

logger = logging.getLogger(__name__)


class AccountRegistry:
    """Creates and authenticates user accounts stored under user:<username>"""

    def __init__(self, accounts: EncryptedNamespace, passwords: PasswordManager,
                 min_password_length: int = 6, default_role: str = "user"):
        self.accounts = accounts
        self.passwords = passwords
        self.min_password_length = min_password_length
        self.default_role = default_role
        self._unknown_user_hash = None

    def register(self, username: str, password: str,
                 email: Optional[str] = None) -> AuthenticatedUser:
        """
        Register new user.

        Security Checks:
        - Input validated before any storage access
        - Username uniqueness via atomic SET NX: exactly one concurrent writer wins
        """
        Validator.validate_registration(username, password, self.min_password_length)

        account = Account(
            username=username,
            password_hash=self.passwords.hash(password),
            email=email or None,
        )

        if not self.accounts.create(username, account.to_dict()):
            logger.info(f"Registration rejected, username taken: {username}")
            raise UsernameTaken()

        logger.info(f"User registered: {username}")
        return account.public(self.default_role)

    def authenticate(self, username: str, password: str) -> AuthenticatedUser:
        """
        Verify credentials and stamp last-login.
        Unknown user, wrong password and unreadable record all raise the same
        InvalidCredentials so callers cannot enumerate usernames.
        """
        Validator.require_strings(username, password)
        if not username or not password:
            raise InvalidCredentials()

        account = self._load(username)
        if account is None:
            # Same Argon2 cost as a wrong password, so timing does not reveal the miss
            self.passwords.verify(password, self._dummy_hash())
            logger.info(f"Login failed for {username}: user_not_found")
            raise InvalidCredentials()

        if not self.passwords.verify(password, account.password_hash):
            logger.info(f"Login failed for {username}: invalid_password")
            raise InvalidCredentials()

        # Upgrade hashes created under older Argon2 parameters
        if self.passwords.needs_rehash(account.password_hash):
            account.password_hash = self.passwords.hash(password)

        account.last_login = utcnow_iso()
        self.accounts.save(username, account.to_dict())

        logger.info(f"Login success: {username}")
        return account.public(self.default_role)

    def lookup(self, username: str) -> Optional[AuthenticatedUser]:
        """Read-only projection, None when absent or unreadable"""
        if not username:
            return None
        account = self._load(username)
        return account.public(self.default_role) if account else None

    def _dummy_hash(self) -> str:
        if self._unknown_user_hash is None:
            self._unknown_user_hash = self.passwords.hash(Validator.generate_token(16))
        return self._unknown_user_hash

    def _load(self, username: str) -> Optional[Account]:
        try:
            data = self.accounts.load(username)
        except DecryptionError:
            logger.error(f"Account record for {username} could not be decrypted")
            return None
        return Account.from_dict(data) if data else None
