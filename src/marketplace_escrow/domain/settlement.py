"""Marketplace policy and payment-split rules.

The platform fee is always ``platform_fee_percent`` of the price and is
taken from the seller's side only; a full buyer refund carries no fee:

    refund_buyer    buyer 100%   seller 0%                 fee 0%
    pay_seller      buyer 0%     seller 100% - fee         fee 5%
    partial_refund  buyer 50%    seller 100% - 50% - fee   fee 5%

Rounding: buyer share and fee are rounded half-up to cents; the seller
receives the remainder, so the three parts always add up to the price.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from marketplace_escrow.domain.clock import duration
from marketplace_escrow.domain.enums import LedgerEntryKind, ResolutionDecision, TimeUnit
from marketplace_escrow.domain.exceptions import InvalidDecisionError
from marketplace_escrow.domain.models import LedgerPart, PaymentBreakdown, to_money

PLATFORM_ACCOUNT = "platform"
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class MarketplacePolicy:
    """Every configurable rule the order engine applies."""

    acceptance_window_hours: int = 24
    review_period_days: int = 3
    auto_release_payment: bool = True
    max_extension_days: int = 14
    max_revision_requests: int = 2
    revision_timeout_value: int = 24
    revision_timeout_unit: TimeUnit = TimeUnit.HOURS
    rejection_timeout_value: int = 48
    rejection_timeout_unit: TimeUnit = TimeUnit.HOURS
    submission_review_period_days: int = 3
    enable_automatic_refunds: bool = True
    platform_fee_percent: int = 5
    partial_refund_buyer_percent: int = 50
    min_justification_length: int = 10
    acceptance_reminder_hours: int = 2
    review_reminder_hours: int = 24

    def __post_init__(self) -> None:
        if self.platform_fee_percent + self.partial_refund_buyer_percent > 100:
            raise ValueError(
                "platform_fee_percent + partial_refund_buyer_percent must not exceed 100, got "
                f"{self.platform_fee_percent} + {self.partial_refund_buyer_percent}"
            )

    @property
    def acceptance_window(self) -> timedelta:
        return timedelta(hours=self.acceptance_window_hours)

    @property
    def review_period(self) -> timedelta:
        return timedelta(days=self.review_period_days)

    @property
    def submission_review_period(self) -> timedelta:
        return timedelta(days=self.submission_review_period_days)

    @property
    def revision_timeout(self) -> timedelta:
        return duration(self.revision_timeout_value, self.revision_timeout_unit)

    @property
    def rejection_timeout(self) -> timedelta:
        return duration(self.rejection_timeout_value, self.rejection_timeout_unit)


def parse_decision(decision: str | ResolutionDecision) -> ResolutionDecision:
    """Coerce a raw decision value, rejecting anything outside the three outcomes."""
    try:
        return ResolutionDecision(decision)
    except ValueError as err:
        raise InvalidDecisionError(str(decision)) from err


def compute_split(
    price: Decimal,
    decision: str | ResolutionDecision,
    policy: MarketplacePolicy,
) -> PaymentBreakdown:
    """Compute the buyer / seller / platform breakdown for a dispute decision."""
    decision = parse_decision(decision)
    price = to_money(price)

    if decision is ResolutionDecision.REFUND_BUYER:
        return PaymentBreakdown(
            buyer_refund=price,
            seller_payment=to_money(0),
            platform_fee=to_money(0),
        )

    fee = to_money(price * policy.platform_fee_percent / HUNDRED)
    if decision is ResolutionDecision.PAY_SELLER:
        buyer = to_money(0)
    else:
        buyer = to_money(price * policy.partial_refund_buyer_percent / HUNDRED)
    seller = price - buyer - fee
    if seller < 0:
        raise ValueError(
            f"Split policy leaves a negative seller share for price {price}: "
            f"fee {policy.platform_fee_percent}% + buyer {policy.partial_refund_buyer_percent}%"
        )
    return PaymentBreakdown(buyer_refund=buyer, seller_payment=seller, platform_fee=fee)


def settlement_parts(
    breakdown: PaymentBreakdown,
    buyer_id: str,
    seller_id: str,
) -> list[LedgerPart]:
    """Turn a breakdown into ledger parts, skipping zero amounts."""
    parts = [
        LedgerPart(buyer_id, breakdown.buyer_refund, LedgerEntryKind.REFUND),
        LedgerPart(seller_id, breakdown.seller_payment, LedgerEntryKind.PAYOUT),
        LedgerPart(PLATFORM_ACCOUNT, breakdown.platform_fee, LedgerEntryKind.PLATFORM_FEE),
    ]
    return [p for p in parts if p.amount > 0]
