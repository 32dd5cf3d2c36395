"""
Member and Payment Request Records

Typed views of the raw rows supplied by the record source. Raw rows carry
nullable primitives (string enums, numbers, ISO-8601 date strings); parsing
turns them into frozen dataclasses with Decimal amounts and timezone-aware
datetimes, and rejects values that violate the row contract.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass
from typing import Dict, Optional, Any
from enum import Enum
import re

from .currency import coerce_amount

# Postgres trims trailing zeros from fractional seconds
_FRACTION = re.compile(r"\.(\d+)")


class InputShapeError(ValueError):
    """A raw record violates the row contract (e.g. a non-numeric amount)"""

    def __init__(self, field: str, value: Any, reason: str = ""):
        self.field = field
        self.value = value
        message = f"Invalid value for '{field}': {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class PaymentStatus(Enum):
    """Status of a yearly payment or emergency collection"""
    PENDING = "pending"
    COMPLETED = "completed"
    UNSET = "unset"               # null or unrecognised, matched case-sensitively


class MembershipStatus(Enum):
    """Membership status of a member"""
    ACTIVE = "active"
    INACTIVE = "inactive"


def parse_timestamp(value: Any, field: str = "timestamp") -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Bare dates and naive datetimes are taken as UTC. None and empty
    strings give None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            except ValueError:
                raise InputShapeError(field, value, "not an ISO-8601 date")
    else:
        raise InputShapeError(field, value, "expected an ISO-8601 string")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_amount(value: Any, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return coerce_amount(value)
    except ValueError as e:
        raise InputShapeError(field, value, str(e)) from e


def _parse_payment_status(value: Any, field: str) -> PaymentStatus:
    if value is None:
        return PaymentStatus.UNSET
    if not isinstance(value, str):
        raise InputShapeError(field, value, "expected a string status")
    try:
        status = PaymentStatus(value)
    except ValueError:
        return PaymentStatus.UNSET
    return status


def _parse_membership_status(value: Any) -> Optional[MembershipStatus]:
    if not isinstance(value, str):
        return None
    try:
        return MembershipStatus(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class MemberRecord:
    """One member tracked by a collector, with payment and status fields"""
    yearly_payment_status: PaymentStatus = PaymentStatus.UNSET
    emergency_collection_status: PaymentStatus = PaymentStatus.UNSET
    yearly_payment_amount: Optional[Decimal] = None
    emergency_collection_amount: Optional[Decimal] = None
    yearly_payment_due_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    payment_type: Optional[str] = None
    membership_status: Optional[MembershipStatus] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemberRecord':
        """Create a record from a raw member row"""
        payment_type = data.get('payment_type')
        if payment_type is not None and not isinstance(payment_type, str):
            raise InputShapeError('payment_type', payment_type, "expected a string")

        return cls(
            yearly_payment_status=_parse_payment_status(
                data.get('yearly_payment_status'), 'yearly_payment_status'
            ),
            emergency_collection_status=_parse_payment_status(
                data.get('emergency_collection_status'), 'emergency_collection_status'
            ),
            yearly_payment_amount=_parse_amount(
                data.get('yearly_payment_amount'), 'yearly_payment_amount'
            ),
            emergency_collection_amount=_parse_amount(
                data.get('emergency_collection_amount'), 'emergency_collection_amount'
            ),
            yearly_payment_due_date=parse_timestamp(
                data.get('yearly_payment_due_date'), 'yearly_payment_due_date'
            ),
            payment_date=parse_timestamp(data.get('payment_date'), 'payment_date'),
            payment_type=payment_type,
            membership_status=_parse_membership_status(data.get('status')),
            created_at=parse_timestamp(data.get('created_at'), 'created_at'),
        )


@dataclass(frozen=True)
class PendingPaymentRequest:
    """A pending payment request already scoped to one collector"""
    amount: Decimal
    collector_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingPaymentRequest':
        """Create a request from a raw payment_requests row"""
        amount = _parse_amount(data.get('amount'), 'amount')
        if amount is None:
            raise InputShapeError('amount', None, "amount is required")

        collector_id = data.get('collector_id')
        return cls(
            amount=amount,
            collector_id=str(collector_id) if collector_id is not None else None,
        )
