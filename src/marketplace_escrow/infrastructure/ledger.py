"""Shared escrow-ledger rules.

Both ledger backends settle through ``settle(subject_id, parts)``; the
release / refund / split helpers are thin wrappers over it, so the
single-settlement guard lives in exactly one place per backend.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from marketplace_escrow.domain.enums import LedgerEntryKind
from marketplace_escrow.domain.exceptions import (
    AlreadySettledError,
    OverSettlementError,
    ReservationMissingError,
    ValidationFailedError,
)
from marketplace_escrow.domain.models import LedgerPart, to_money

if TYPE_CHECKING:
    from collections.abc import Sequence

    from marketplace_escrow.domain.models import Reservation


def check_settlement(
    subject_id: str,
    reservation: Reservation | None,
    parts: Sequence[LedgerPart],
) -> None:
    """Raise unless ``parts`` may settle ``reservation``."""
    if reservation is None:
        raise ReservationMissingError(subject_id)
    if reservation.is_settled:
        raise AlreadySettledError(subject_id)
    if any(p.amount < 0 for p in parts):
        raise ValidationFailedError("Settlement amounts must not be negative", field="parts")
    requested = sum((p.amount for p in parts), Decimal("0"))
    if requested > reservation.amount:
        raise OverSettlementError(subject_id, str(requested), str(reservation.amount))


class LedgerShortcuts:
    """release / split / refund on top of ``get`` and ``settle``."""

    async def get(self, subject_id: str) -> Reservation | None:
        raise NotImplementedError

    async def settle(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation:
        raise NotImplementedError

    async def release(self, subject_id: str, to: str, amount: Decimal) -> Reservation:
        """Pay ``amount`` out of the reservation to ``to``."""
        return await self.settle(subject_id, [LedgerPart(to, to_money(amount), LedgerEntryKind.PAYOUT)])

    async def split(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation:
        return await self.settle(subject_id, parts)

    async def refund(self, subject_id: str) -> Reservation:
        """Return the full reservation to whoever paid it."""
        reservation = await self.get(subject_id)
        if reservation is None:
            raise ReservationMissingError(subject_id)
        return await self.settle(
            subject_id,
            [LedgerPart(reservation.payer_id, reservation.amount, LedgerEntryKind.REFUND)],
        )
