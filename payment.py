"""
Payment sessions and payment cache

Two encrypted namespaces with fixed TTLs (session:<id>, payment:<id>).
The managers are dumb stores: status transitions are up to the caller.
The one rule enforced here is that card data is masked before it is merged
into any record.
"""

import logging
import math
import random
import secrets
import string
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from exceptions import DecryptionError, SessionNotFound, ValidationError
from models import CardDetails, PaymentResult, PaymentSession, PaymentStatus, utcnow_iso
from store import EncryptedNamespace
from utils import Validator

logger = logging.getLogger(__name__)

CARD_FIELDS = ('card_number', 'expiry_month', 'expiry_year', 'cvv', 'cardholder_name')


def mask_card(card: Mapping[str, Any]) -> CardDetails:
    """Drops the full number and CVV; keeps last 4 digits and display fields"""
    return CardDetails(
        last4=Validator.mask_card_number(str(card.get('card_number', ''))),
        expiry_month=str(card.get('expiry_month', '')),
        expiry_year=str(card.get('expiry_year', '')),
        cardholder_name=str(card.get('cardholder_name', '')),
    )


class PaymentSessionManager:
    def __init__(self, sessions: EncryptedNamespace, cache: EncryptedNamespace):
        self.sessions = sessions
        self.cache = cache

    # ---- session:<id> ----

    def create_session(self, payment: PaymentSession) -> str:
        session_id = Validator.generate_token(32)
        self.sessions.save(session_id, payment.to_dict())
        return session_id

    def get_session(self, session_id: str) -> Optional[PaymentSession]:
        return self._load(self.sessions, session_id)

    def update_session(self, session_id: str, payment: PaymentSession) -> None:
        """Full overwrite; the fixed TTL restarts with every write"""
        self.sessions.save(session_id, payment.to_dict())

    def attach_card(self, session_id: str, card: Mapping[str, Any]) -> PaymentSession:
        payment = self.get_session(session_id)
        if payment is None:
            raise SessionNotFound()
        payment.card_details = mask_card(card).to_dict()
        self.update_session(session_id, payment)
        return payment

    def delete_session(self, session_id: str) -> None:
        self.sessions.delete(session_id)

    # ---- payment:<id> ----

    def cache_payment(self, payment_id: str, payment: PaymentSession) -> None:
        self.cache.save(payment_id, payment.to_dict())

    def get_cached_payment(self, payment_id: str) -> Optional[PaymentSession]:
        return self._load(self.cache, payment_id)

    @staticmethod
    def new_payment_id() -> str:
        return f"PAY_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    @staticmethod
    def _load(namespace: EncryptedNamespace, ident: str) -> Optional[PaymentSession]:
        if not ident:
            return None
        try:
            data = namespace.load(ident)
        except DecryptionError:
            logger.error(f"Unreadable record under {namespace.prefix}, treating as absent")
            return None
        return PaymentSession.from_dict(data) if data else None


class SimulatedPaymentProcessor:
    """
    Stand-in for an external processor: fixed delay, then a coin flip.
    Results are final; nothing here is retried.
    """

    def __init__(self, delay: float = 2.0, success_rate: float = 0.9,
                 rng: Optional[random.Random] = None):
        self.delay = delay
        self.success_rate = success_rate
        self.rng = rng or random.Random()

    def process(self, payment: Mapping[str, Any]) -> PaymentResult:
        if self.delay:
            time.sleep(self.delay)

        success = self.rng.random() < self.success_rate
        suffix = ''.join(self.rng.choice(string.ascii_lowercase + string.digits) for _ in range(9))
        return PaymentResult(
            success=success,
            transaction_id=f"TXN_{int(time.time() * 1000)}_{suffix}",
            timestamp=utcnow_iso(),
            amount=payment['amount'],
            currency=payment['currency'],
            status=PaymentStatus.COMPLETED.value if success else PaymentStatus.FAILED.value,
            message='Payment processed successfully' if success else 'Payment processing failed',
        )


class PaymentService:
    """Payment flow: initialize -> attach card and process -> query status -> clear"""

    def __init__(self, manager: PaymentSessionManager, processor):
        self.manager = manager
        self.processor = processor

    def initialize_payment(self, amount, currency: Optional[str],
                           description: Optional[str] = None) -> str:
        if amount in (None, '') or not currency:
            raise ValidationError("Amount and currency are required")
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError("Amount must be a number")
        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be greater than zero")
        # Decimals beyond float range would be stored as inf
        if not math.isfinite(float(value)):
            raise ValidationError("Amount is too large")

        payment = PaymentSession(
            amount=float(value),
            currency=currency.strip().upper(),
            description=description or 'Payment',
        )
        session_id = self.manager.create_session(payment)
        logger.info(f"Payment session initialized ({payment.currency} {payment.amount})")
        return session_id

    def process_payment(self, session_id: str, card: Mapping[str, Any]) -> Dict[str, Any]:
        if not session_id or any(not card.get(name) for name in CARD_FIELDS):
            raise ValidationError("All payment details are required")

        payment = self.manager.attach_card(session_id, card)
        payment.status = PaymentStatus.PROCESSING.value

        payment_id = self.manager.new_payment_id()
        self.manager.cache_payment(payment_id, payment)

        result = self.processor.process(payment.to_dict())

        payment.payment_id = payment_id
        payment.result = result.to_dict()
        payment.status = result.status
        self.manager.update_session(session_id, payment)

        logger.info(f"Payment {payment_id} finished with status {result.status}")
        return {
            'success': True,
            'payment_id': payment_id,
            'session_id': session_id,
            'result': result.to_dict(),
        }

    def get_payment_status(self, session_id: str) -> Dict[str, Any]:
        """Safe projection only - no card data"""
        payment = self.manager.get_session(session_id)
        if payment is None:
            raise SessionNotFound()
        return {
            'success': True,
            'amount': payment.amount,
            'currency': payment.currency,
            'description': payment.description,
            'status': payment.status,
            'timestamp': payment.timestamp,
            'result': payment.result,
        }

    def clear_session(self, session_id: str) -> None:
        self.manager.delete_session(session_id)
