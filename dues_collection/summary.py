"""
Collection Summary Module

Presentation metrics derived from a statistics snapshot: completion
percentages, remaining members and the organisation-wide expected yearly
total. Percentages are None when a collector has no members.
"""

from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .currency import Money, Currency
from .statistics import StatisticsSnapshot, CollectionPolicy, DEFAULT_POLICY


def completion_percentage(completed: int, total_members: int) -> Optional[int]:
    """round(completed / total_members * 100), or None for zero members"""
    if total_members <= 0:
        return None
    ratio = Decimal(completed) * 100 / Decimal(total_members)
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def format_percentage(value: Optional[int]) -> str:
    """Render a completion percentage, 'N/A' when undefined"""
    if value is None:
        return "N/A"
    return f"{value}%"


@dataclass(frozen=True)
class CollectionSummary:
    """Snapshot plus the metrics the dashboard renders from it"""
    snapshot: StatisticsSnapshot
    yearly_completion_percentage: Optional[int]
    emergency_completion_percentage: Optional[int]
    remaining_members: int
    total_yearly_amount: Decimal
    collected_yearly_amount: Decimal
    currency: Currency = Currency.GBP

    def to_dict(self) -> Dict[str, Any]:
        snapshot = self.snapshot
        return {
            'statistics': snapshot.to_dict(),
            'yearly_completion_percentage': self.yearly_completion_percentage,
            'emergency_completion_percentage': self.emergency_completion_percentage,
            'remaining_members': self.remaining_members,
            'total_yearly_amount': str(self.total_yearly_amount),
            'collected_yearly_amount': str(self.collected_yearly_amount),
            'display': {
                'yearly_completion': format_percentage(self.yearly_completion_percentage),
                'emergency_completion': format_percentage(self.emergency_completion_percentage),
                'collected_yearly': Money(self.collected_yearly_amount, self.currency).to_display(),
                'total_yearly': Money(self.total_yearly_amount, self.currency).to_display(),
                'emergency_collected': Money(
                    snapshot.emergency_collections.total_collected, self.currency
                ).to_display(),
                'pending_amount': Money(
                    snapshot.pending_payments.amount, self.currency
                ).to_display(),
                'emergency_paid': (
                    f"{snapshot.emergency_collections.completed}/{snapshot.total_members} paid"
                ),
            },
        }


def summarize(
    snapshot: StatisticsSnapshot,
    policy: CollectionPolicy = DEFAULT_POLICY,
    currency: Currency = Currency.GBP
) -> CollectionSummary:
    """Derive presentation metrics from a snapshot"""
    total = snapshot.total_members
    return CollectionSummary(
        snapshot=snapshot,
        yearly_completion_percentage=completion_percentage(
            snapshot.yearly_payments.completed, total
        ),
        emergency_completion_percentage=completion_percentage(
            snapshot.emergency_collections.completed, total
        ),
        remaining_members=total - snapshot.yearly_payments.completed,
        # Expected total uses the default for every member, regardless of overrides
        total_yearly_amount=policy.default_yearly_amount * total,
        collected_yearly_amount=snapshot.yearly_payments.total_collected,
        currency=currency,
    )
