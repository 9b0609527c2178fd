"""Tests for the payment-split rules, the policy durations and their settings."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace_escrow.config import Settings
from marketplace_escrow.domain.enums import LedgerEntryKind, ResolutionDecision, TimeUnit
from marketplace_escrow.domain.exceptions import InvalidDecisionError
from marketplace_escrow.domain.settlement import (
    PLATFORM_ACCOUNT,
    MarketplacePolicy,
    compute_split,
    settlement_parts,
)

POLICY = MarketplacePolicy()


class TestComputeSplit:
    def test_refund_buyer_carries_no_fee(self) -> None:
        split = compute_split(Decimal("100"), "refund_buyer", POLICY)
        assert split.buyer_refund == Decimal("100.00")
        assert split.seller_payment == Decimal("0.00")
        assert split.platform_fee == Decimal("0.00")

    def test_pay_seller(self) -> None:
        split = compute_split(Decimal("100"), ResolutionDecision.PAY_SELLER, POLICY)
        assert split.buyer_refund == Decimal("0.00")
        assert split.seller_payment == Decimal("95.00")
        assert split.platform_fee == Decimal("5.00")

    def test_partial_refund(self) -> None:
        split = compute_split(Decimal("100"), "partial_refund", POLICY)
        assert split.buyer_refund == Decimal("50.00")
        assert split.seller_payment == Decimal("45.00")
        assert split.platform_fee == Decimal("5.00")

    @pytest.mark.parametrize("decision", list(ResolutionDecision))
    @pytest.mark.parametrize("price", ["33.33", "0.01", "1234.57", "99.99"])
    def test_parts_always_sum_to_price(self, decision: ResolutionDecision, price: str) -> None:
        split = compute_split(Decimal(price), decision, POLICY)
        assert split.total == Decimal(price)
        assert min(split.buyer_refund, split.seller_payment, split.platform_fee) >= 0

    def test_odd_cent_rounding(self) -> None:
        split = compute_split(Decimal("33.33"), "partial_refund", POLICY)
        assert split.buyer_refund == Decimal("16.67")
        assert split.platform_fee == Decimal("1.67")
        assert split.seller_payment == Decimal("14.99")

    def test_unknown_decision(self) -> None:
        with pytest.raises(InvalidDecisionError) as exc_info:
            compute_split(Decimal("100"), "split_evenly", POLICY)
        assert exc_info.value.code == "INVALID_DECISION"

    def test_configured_fee(self) -> None:
        policy = MarketplacePolicy(platform_fee_percent=10, partial_refund_buyer_percent=30)
        split = compute_split(Decimal("200"), "partial_refund", policy)
        assert split.buyer_refund == Decimal("60.00")
        assert split.platform_fee == Decimal("20.00")
        assert split.seller_payment == Decimal("120.00")


class TestSettlementParts:
    def test_zero_parts_are_skipped(self) -> None:
        split = compute_split(Decimal("100"), "refund_buyer", POLICY)
        parts = settlement_parts(split, "buyer", "seller")
        assert len(parts) == 1
        assert parts[0].recipient_id == "buyer"
        assert parts[0].kind is LedgerEntryKind.REFUND

    def test_fee_goes_to_platform(self) -> None:
        split = compute_split(Decimal("100"), "pay_seller", POLICY)
        parts = {p.recipient_id: p for p in settlement_parts(split, "buyer", "seller")}
        assert parts[PLATFORM_ACCOUNT].kind is LedgerEntryKind.PLATFORM_FEE
        assert parts["seller"].amount == Decimal("95.00")


class TestPolicyDurations:
    def test_defaults(self) -> None:
        assert POLICY.acceptance_window == timedelta(hours=24)
        assert POLICY.review_period == timedelta(days=3)
        assert POLICY.revision_timeout == timedelta(hours=24)
        assert POLICY.rejection_timeout == timedelta(hours=48)

    def test_configurable_units(self) -> None:
        policy = MarketplacePolicy(revision_timeout_value=30, revision_timeout_unit=TimeUnit.MINUTES)
        assert policy.revision_timeout == timedelta(minutes=30)


class TestSettingsToPolicy:
    def test_settings_flow_into_policy(self) -> None:
        settings = Settings(
            platform_fee_percent=10,
            rejection_response_timeout_value=2,
            rejection_response_timeout_unit="days",
        )
        policy = settings.to_policy()
        assert policy.rejection_timeout == timedelta(days=2)

        split = compute_split(Decimal("100"), "pay_seller", policy)
        assert (split.seller_payment, split.platform_fee) == (Decimal("90.00"), Decimal("10.00"))

    def test_admin_ids_are_parsed(self) -> None:
        assert Settings(admin_ids=" root, ops ,").admin_id_list == ["root", "ops"]
        assert Settings(admin_ids="").admin_id_list == []

    def test_settings_reject_split_over_price(self) -> None:
        with pytest.raises(ValueError, match="must not exceed 100"):
            Settings(platform_fee_percent=60, partial_refund_buyer_percent=50)

    def test_settings_accept_split_equal_to_price(self) -> None:
        policy = Settings(platform_fee_percent=60, partial_refund_buyer_percent=40).to_policy()
        split = compute_split(Decimal("100"), "partial_refund", policy)
        assert split.seller_payment == Decimal("0.00")


class TestPolicyValidation:
    def test_split_over_price_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not exceed 100"):
            MarketplacePolicy(platform_fee_percent=60, partial_refund_buyer_percent=50)
