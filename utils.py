import re
import secrets
import hmac
from typing import Optional

from exceptions import ValidationError

CARD_DIGITS = re.compile(r"\d")


class Validator:
    @staticmethod
    def validate_registration(username: Optional[str], password: Optional[str],
                              min_length: int = 6) -> None:
        """
        Enforces:
        - Username and password present
        - Password of at least `min_length` characters
        """
        Validator.require_strings(username, password)
        if not username or not password:
            raise ValidationError("Username and password are required")
        if len(password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters long")

    @staticmethod
    def require_strings(username, password) -> None:
        """Token subjects and store keys must be text; None is left to the emptiness check"""
        for value in (username, password):
            if value is not None and not isinstance(value, str):
                raise ValidationError("Username and password must be text")

    @staticmethod
    def generate_token(length_bytes: int = 32) -> str:
        """Generates cryptographically secure URL-safe token"""
        return secrets.token_urlsafe(length_bytes)

    @staticmethod
    def tokens_match(presented: str, stored: str) -> bool:
        return hmac.compare_digest(presented.encode(), stored.encode())

    @staticmethod
    def mask_card_number(card_number: str) -> str:
        """Reduce a card number to its last 4 digits. Separators are ignored."""
        digits = "".join(CARD_DIGITS.findall(card_number or ""))
        if len(digits) < 4:
            raise ValidationError("Invalid card number")
        return digits[-4:]
