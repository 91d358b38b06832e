import datetime
import enum
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional


def utcnow_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Account:
    """Stored under user:<username>. Never deleted in normal operation."""
    username: str
    password_hash: str
    email: Optional[str] = None
    created_at: str = field(default_factory=utcnow_iso)
    last_login: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            username=data["username"],
            password_hash=data["password_hash"],
            email=data.get("email"),
            created_at=data.get("created_at") or utcnow_iso(),
            last_login=data.get("last_login"),
        )

    def public(self, role: str = "user") -> "AuthenticatedUser":
        return AuthenticatedUser(
            username=self.username,
            email=self.email,
            created_at=self.created_at,
            last_login=self.last_login,
            role=role,
        )


@dataclass
class AuthenticatedUser:
    """Sanitized projection of an Account - no password hash"""
    username: str
    email: Optional[str] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    role: str = "user"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthenticatedUser":
        return cls(
            username=data["username"],
            email=data.get("email"),
            created_at=data.get("created_at"),
            last_login=data.get("last_login"),
            role=data.get("role", "user"),
        )


@dataclass
class AuthSession:
    """Stored under token:<session_id>; holds the one current token"""
    session_id: str
    username: str
    user: AuthenticatedUser
    token: str
    created_at: str = field(default_factory=utcnow_iso)
    last_activity: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        return cls(
            session_id=data["session_id"],
            username=data["username"],
            user=AuthenticatedUser.from_dict(data["user"]),
            token=data["token"],
            created_at=data["created_at"],
            last_activity=data["last_activity"],
        )


@dataclass
class CardDetails:
    """Masked card data. Full number and CVV are never part of this type."""
    last4: str
    expiry_month: str
    expiry_year: str
    cardholder_name: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaymentResult:
    success: bool
    transaction_id: str
    timestamp: str
    amount: float
    currency: str
    status: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaymentSession:
    """
    Payment session (session:<id>) and payment cache (payment:<id>) share this shape.
    Status transitions are driven by the caller.
    """
    amount: float
    currency: str
    description: str = "Payment"
    status: str = PaymentStatus.PENDING.value
    timestamp: str = field(default_factory=utcnow_iso)
    card_details: Optional[Dict[str, Any]] = None
    payment_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentSession":
        return cls(
            amount=data["amount"],
            currency=data["currency"],
            description=data.get("description", "Payment"),
            status=data.get("status", PaymentStatus.PENDING.value),
            timestamp=data.get("timestamp") or utcnow_iso(),
            card_details=data.get("card_details"),
            payment_id=data.get("payment_id"),
            result=data.get("result"),
        )
