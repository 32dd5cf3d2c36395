"""
Test suite for presentation metrics derived from a snapshot
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from dues_collection.currency import Currency
from dues_collection.records import MemberRecord, PendingPaymentRequest, PaymentStatus
from dues_collection.statistics import compute_snapshot, CollectionPolicy
from dues_collection.summary import (
    summarize, completion_percentage, format_percentage, CollectionSummary
)


NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestCompletionPercentage:
    """Percentage derivation with the zero-member guard"""

    def test_zero_members_is_undefined(self):
        assert completion_percentage(0, 0) is None

    def test_rounding(self):
        assert completion_percentage(1, 3) == 33
        assert completion_percentage(2, 3) == 67
        assert completion_percentage(1, 8) == 13  # 12.5 rounds half up
        assert completion_percentage(3, 3) == 100

    def test_format_percentage(self):
        assert format_percentage(None) == "N/A"
        assert format_percentage(0) == "0%"
        assert format_percentage(67) == "67%"


class TestSummarize:
    """summarize() over real snapshots"""

    def test_empty_snapshot_summary(self):
        summary = summarize(compute_snapshot([], [], NOW))

        assert summary.yearly_completion_percentage is None
        assert summary.emergency_completion_percentage is None
        assert summary.remaining_members == 0
        assert summary.total_yearly_amount == Decimal('0')
        assert summary.collected_yearly_amount == Decimal('0')

        display = summary.to_dict()['display']
        assert display['yearly_completion'] == "N/A"
        assert display['emergency_completion'] == "N/A"
        assert display['emergency_paid'] == "0/0 paid"

    def test_expected_total_ignores_overrides(self):
        members = [
            MemberRecord(yearly_payment_status=PaymentStatus.COMPLETED,
                         yearly_payment_amount=Decimal('100')),
            MemberRecord(yearly_payment_status=PaymentStatus.PENDING),
            MemberRecord(emergency_collection_status=PaymentStatus.COMPLETED,
                         emergency_collection_amount=Decimal('20')),
            MemberRecord(),
        ]
        snapshot = compute_snapshot(members, [PendingPaymentRequest(amount=Decimal('40'))], NOW)

        summary = summarize(snapshot)

        assert summary.total_yearly_amount == Decimal('160')
        assert summary.collected_yearly_amount == Decimal('100')
        assert summary.remaining_members == 3
        assert summary.yearly_completion_percentage == 25
        assert summary.emergency_completion_percentage == 25

    def test_to_dict_display_values(self):
        members = [
            MemberRecord(yearly_payment_status=PaymentStatus.COMPLETED),
            MemberRecord(yearly_payment_status=PaymentStatus.COMPLETED),
            MemberRecord(yearly_payment_status=PaymentStatus.PENDING),
        ]
        snapshot = compute_snapshot(members, [PendingPaymentRequest(amount=Decimal('12.5'))], NOW)

        data = summarize(snapshot).to_dict()

        assert data['yearly_completion_percentage'] == 67
        assert data['remaining_members'] == 1
        assert data['total_yearly_amount'] == '120'
        assert data['collected_yearly_amount'] == '80'
        assert data['display']['collected_yearly'] == "£80"
        assert data['display']['total_yearly'] == "£120"
        assert data['display']['pending_amount'] == "£12.50"
        assert data['display']['yearly_completion'] == "67%"
        assert data['statistics']['total_members'] == 3

    def test_policy_and_currency(self):
        snapshot = compute_snapshot([MemberRecord(), MemberRecord()], [], NOW)
        policy = CollectionPolicy(default_yearly_amount=Decimal('25'))

        summary = summarize(snapshot, policy, Currency.EUR)

        assert summary.total_yearly_amount == Decimal('50')
        assert summary.to_dict()['display']['total_yearly'] == "€50"

    def test_summary_is_frozen(self):
        summary = summarize(compute_snapshot([], [], NOW))
        assert isinstance(summary, CollectionSummary)
        with pytest.raises(Exception):
            summary.remaining_members = 3
