"""
Collection Statistics Engine

Turns a collector's member records and pending payment requests into an
immutable statistics snapshot: yearly and emergency collection progress,
overdue counts, recent activity windows, membership counts and monetary
totals. All computation is pure; the caller supplies "now".
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from .currency import ZERO, coerce_amount
from .records import MemberRecord, PendingPaymentRequest, PaymentStatus, MembershipStatus


DEFAULT_YEARLY_AMOUNT = Decimal('40')
RECENT_WINDOW = timedelta(days=30)


@dataclass(frozen=True)
class CollectionPolicy:
    """Named policy constants applied by the statistics engine"""
    default_yearly_amount: Decimal = DEFAULT_YEARLY_AMOUNT
    recent_window: timedelta = RECENT_WINDOW

    @classmethod
    def from_config(cls, config) -> 'CollectionPolicy':
        """Build a policy from a DuesConfig"""
        return cls(
            default_yearly_amount=coerce_amount(config.default_yearly_amount),
            recent_window=timedelta(days=config.recent_window_days),
        )


DEFAULT_POLICY = CollectionPolicy()


@dataclass(frozen=True)
class PendingPaymentStats:
    count: int = 0
    amount: Decimal = ZERO


@dataclass(frozen=True)
class YearlyPaymentStats:
    completed: int = 0
    pending: int = 0
    total_collected: Decimal = ZERO
    next_due_date: Optional[datetime] = None
    overdue: int = 0


@dataclass(frozen=True)
class EmergencyCollectionStats:
    completed: int = 0
    pending: int = 0
    total_collected: Decimal = ZERO


@dataclass(frozen=True)
class RecentActivityStats:
    last_payment_date: Optional[datetime] = None
    recent_payments: int = 0


@dataclass(frozen=True)
class MembershipStats:
    active: int = 0
    inactive: int = 0
    new_members: int = 0


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Aggregate statistics for one collector at one point in time"""
    computed_at: datetime
    total_members: int = 0
    pending_payments: PendingPaymentStats = field(default_factory=PendingPaymentStats)
    yearly_payments: YearlyPaymentStats = field(default_factory=YearlyPaymentStats)
    emergency_collections: EmergencyCollectionStats = field(default_factory=EmergencyCollectionStats)
    recent_activity: RecentActivityStats = field(default_factory=RecentActivityStats)
    membership_stats: MembershipStats = field(default_factory=MembershipStats)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation (Decimal as string, datetimes ISO-8601)"""
        return {
            'computed_at': _iso(self.computed_at),
            'total_members': self.total_members,
            'pending_payments': {
                'count': self.pending_payments.count,
                'amount': str(self.pending_payments.amount),
            },
            'yearly_payments': {
                'completed': self.yearly_payments.completed,
                'pending': self.yearly_payments.pending,
                'total_collected': str(self.yearly_payments.total_collected),
                'next_due_date': _iso(self.yearly_payments.next_due_date),
                'overdue': self.yearly_payments.overdue,
            },
            'emergency_collections': {
                'completed': self.emergency_collections.completed,
                'pending': self.emergency_collections.pending,
                'total_collected': str(self.emergency_collections.total_collected),
            },
            'recent_activity': {
                'last_payment_date': _iso(self.recent_activity.last_payment_date),
                'recent_payments': self.recent_activity.recent_payments,
            },
            'membership_stats': {
                'active': self.membership_stats.active,
                'inactive': self.membership_stats.inactive,
                'new_members': self.membership_stats.new_members,
            },
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _count(items: Iterable, predicate: Callable[[Any], bool]) -> int:
    return sum(1 for item in items if predicate(item))


def _earliest(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    earliest = None
    for value in values:
        if value is None:
            continue
        if earliest is None or value < earliest:
            earliest = value
    return earliest


def _latest(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    latest = None
    for value in values:
        if value is None:
            continue
        if latest is None or value > latest:
            latest = value
    return latest


def effective_yearly_amount(member: MemberRecord,
                            policy: CollectionPolicy = DEFAULT_POLICY) -> Decimal:
    """Amount a completed yearly payment contributes; 0 when not completed"""
    if member.yearly_payment_status != PaymentStatus.COMPLETED:
        return ZERO
    if member.yearly_payment_amount is None:
        return policy.default_yearly_amount
    return member.yearly_payment_amount


def effective_emergency_amount(member: MemberRecord) -> Decimal:
    """Amount a completed emergency collection contributes; no default"""
    if member.emergency_collection_status != PaymentStatus.COMPLETED:
        return ZERO
    if member.emergency_collection_amount is None:
        return ZERO
    return member.emergency_collection_amount


def is_overdue(member: MemberRecord, now: datetime) -> bool:
    """Due date strictly before now and yearly payment not completed"""
    due = member.yearly_payment_due_date
    return (
        due is not None
        and due < now
        and member.yearly_payment_status != PaymentStatus.COMPLETED
    )


def compute_snapshot(
    members: Sequence[MemberRecord],
    pending_requests: Sequence[PendingPaymentRequest],
    now: datetime,
    policy: CollectionPolicy = DEFAULT_POLICY
) -> StatisticsSnapshot:
    """
    Compute the statistics snapshot for one collector.

    Args:
        members: Member records already filtered to the collector
        pending_requests: Pending payment requests for the collector
        now: Instant the windowed fields are measured against; naive
            values are taken as UTC
        policy: Default amounts and window length

    Returns:
        StatisticsSnapshot. Empty inputs give zero counts, zero amounts
        and None dates.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    window_start = now - policy.recent_window

    # Materialise once so generators are not exhausted between passes
    members = tuple(members)
    pending_requests = tuple(pending_requests)

    pending_payments = PendingPaymentStats(
        count=len(pending_requests),
        amount=sum((request.amount for request in pending_requests), ZERO),
    )

    yearly_payments = YearlyPaymentStats(
        completed=_count(members, lambda m: m.yearly_payment_status == PaymentStatus.COMPLETED),
        pending=_count(members, lambda m: m.yearly_payment_status == PaymentStatus.PENDING),
        total_collected=sum((effective_yearly_amount(m, policy) for m in members), ZERO),
        next_due_date=_earliest(m.yearly_payment_due_date for m in members),
        overdue=_count(members, lambda m: is_overdue(m, now)),
    )

    emergency_collections = EmergencyCollectionStats(
        completed=_count(members, lambda m: m.emergency_collection_status == PaymentStatus.COMPLETED),
        pending=_count(members, lambda m: m.emergency_collection_status == PaymentStatus.PENDING),
        total_collected=sum((effective_emergency_amount(m) for m in members), ZERO),
    )

    recent_activity = RecentActivityStats(
        last_payment_date=_latest(m.payment_date for m in members),
        recent_payments=_count(
            members,
            lambda m: m.payment_date is not None and m.payment_date > window_start
        ),
    )

    membership_stats = MembershipStats(
        active=_count(members, lambda m: m.membership_status == MembershipStatus.ACTIVE),
        inactive=_count(members, lambda m: m.membership_status == MembershipStatus.INACTIVE),
        new_members=_count(
            members,
            lambda m: m.created_at is not None and m.created_at > window_start
        ),
    )

    return StatisticsSnapshot(
        computed_at=now,
        total_members=len(members),
        pending_payments=pending_payments,
        yearly_payments=yearly_payments,
        emergency_collections=emergency_collections,
        recent_activity=recent_activity,
        membership_stats=membership_stats,
    )
