#!/usr/bin/env python3
"""Marketplace Escrow: End-to-End Simulation.

Runs the five reference scenarios against the real services, with a
manual clock so deadlines can be crossed instantly:

    Scenario A: Seller declines
        - Buyer orders a $100 service, seller declines -> buyer refunded $100

    Scenario B: Silent buyer
        - Order delivered, buyer never reviews, review deadline elapses
        - Sweeper auto-releases $100 to the seller (no fee)

    Scenario C: Partial refund
        - Delivered order disputed, admin resolves partial_refund
        - Buyer $50.00, seller $45.00, platform $5.00

    Scenario D: Ignored rejection
        - Employer rejects a submission, worker does nothing for 48h
        - Sweeper marks it rejected_accepted and refunds the employer

    Scenario E: Duplicate dispute
        - A second dispute on the same order -> CONFLICT, first untouched

Usage:
    # In-memory stores (default):
    python simulation.py

    # SQLAlchemy stores over SQLite in-memory:
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --scenario C
"""

from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal
from typing import TYPE_CHECKING

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from marketplace_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="WARNING", json_logs=False)
logger = get_logger("simulation")

from marketplace_escrow.domain.clock import ManualClock  # noqa: E402
from marketplace_escrow.domain.enums import SubjectKind  # noqa: E402
from marketplace_escrow.services.container import build_services  # noqa: E402

if TYPE_CHECKING:
    from marketplace_escrow.services.container import Services

BUYER = "buyer-alice"
SELLER = "seller-bob"
ADMIN = "admin"

# Module-level state
_sqlite_engine = None


# ---------------------------------------------------------------------------
# Storage lifecycle helpers
# ---------------------------------------------------------------------------
async def init_services(clock: ManualClock, use_sqlite: bool = False) -> Services:
    """Build the services over in-memory or SQLite-backed stores."""
    global _sqlite_engine

    if use_sqlite:
        from marketplace_escrow.infrastructure.database import (
            SqlAlchemyStoreFactory,
            build_engine,
            create_tables,
            make_session_factory,
        )

        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        await create_tables(_sqlite_engine)
        store_factory = SqlAlchemyStoreFactory(make_session_factory(_sqlite_engine), clock=clock)
        logger.info("database.sqlite_initialized")
    else:
        from marketplace_escrow.infrastructure.memory import MemoryStoreFactory

        store_factory = MemoryStoreFactory(clock=clock)

    return build_services(store_factory, admin_ids=[ADMIN], clock=clock)


async def shutdown(services: Services) -> None:
    global _sqlite_engine

    await services.bus.drain()
    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------
def section(title: str) -> None:
    print(f"\n{'─' * 70}\n  {title}\n{'─' * 70}")


async def print_ledger(services: Services, subject_id: str) -> None:
    async with services.ctx.read() as stores:
        reservation = await stores.ledger.get(subject_id)
    if reservation is None:
        print("  (no reservation)")
        return
    state = "settled" if reservation.is_settled else "held"
    print(f"  Escrow: ${reservation.amount} {state}")
    for part in reservation.parts:
        print(f"    -> {part.recipient_id:<14} ${part.amount:>8}  ({part.kind.value})")


async def print_audit_trail(services: Services, subject_id: str) -> None:
    print("\n  📜 Audit trail:")
    async with services.ctx.read() as stores:
        entries = await stores.audit.list_for_subject(subject_id)
    for e in entries:
        transition = f"{e.old_status or '-'} -> {e.new_status or '-'}"
        print(f"    {e.created_at:%Y-%m-%d %H:%M}  {e.event_type.value:<28} {transition:<36} by {e.actor}")


async def _delivered_order(services: Services) -> str:
    order = (
        await services.orders.place_order(
            BUYER, SELLER, Decimal("100.00"), delivery_days=5, service_name="Logo design"
        )
    ).unwrap()
    (await services.orders.accept(order.id, SELLER)).unwrap()
    (await services.orders.start(order.id, SELLER)).unwrap()
    (await services.orders.submit_delivery(order.id, SELLER, "Final logo attached", ["files/logo.svg"])).unwrap()
    return order.id


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_a(services: Services, clock: ManualClock) -> None:
    section("Scenario A: seller declines, buyer refunded")
    order = (
        await services.orders.place_order(BUYER, SELLER, Decimal("100.00"), delivery_days=3, service_name="Website audit")
    ).unwrap()
    declined = (await services.orders.decline(order.id, SELLER, "Fully booked this month")).unwrap()
    print(f"  Order {order.id}: {declined.status.value}")
    await print_ledger(services, order.id)
    await print_audit_trail(services, order.id)


async def scenario_b(services: Services, clock: ManualClock) -> None:
    section("Scenario B: buyer silent, sweeper auto-releases")
    order_id = await _delivered_order(services)
    remaining = (await services.orders.get_time_remaining(order_id)).unwrap()
    print(f"  Review window: {remaining['remaining']}")

    clock.advance(days=services.ctx.policy.review_period_days, minutes=1)
    report = await services.sweeper.run_once()
    print(f"  Sweep applied {report.applied} action(s)")
    second = await services.sweeper.run_once()
    print(f"  Second sweep applied {second.applied} action(s)")

    order = (await services.orders.get_order(order_id)).unwrap()
    print(f"  Order {order_id}: {order.status.value}")
    await print_ledger(services, order_id)
    await print_audit_trail(services, order_id)


async def scenario_c(services: Services, clock: ManualClock) -> None:
    section("Scenario C: dispute resolved with a partial refund")
    order_id = await _delivered_order(services)
    dispute = (
        await services.orders.open_dispute(
            order_id, BUYER, "Colours do not match the brief", evidence=["files/brief.pdf"]
        )
    ).unwrap()
    print(f"  Dispute {dispute.id} opened by {dispute.opened_by_role.value}")

    resolved = (
        await services.disputes.resolve(
            dispute.id, ADMIN, "partial_refund", "Work partly meets the brief; splitting the difference."
        )
    ).unwrap()
    payment = resolved.resolution.payment
    print(f"  Buyer ${payment.buyer_refund}, seller ${payment.seller_payment}, fee ${payment.platform_fee}")
    await print_ledger(services, order_id)
    await print_audit_trail(services, order_id)


async def scenario_d(services: Services, clock: ManualClock) -> None:
    section("Scenario D: rejection ignored, employer refunded")
    sub = (
        await services.submissions.submit_work(
            "JOB-1", SELLER, BUYER, Decimal("100.00"), "Dataset cleaned, see link", links=["https://example.com/d"]
        )
    ).unwrap()
    rejected = (
        await services.submissions.reject(sub.id, BUYER, "Half the rows are still duplicated")
    ).unwrap()
    print(f"  Rejected; worker must answer by {rejected.rejection_deadline:%Y-%m-%d %H:%M}")

    clock.advance(hours=48, minutes=1)
    report = await services.sweeper.run_once()
    for action in report.actions:
        print(f"  Sweep: {action.subject_kind.value} {action.subject_id} {action.action} -> {action.outcome}")

    final = (await services.submissions.get_submission(sub.id)).unwrap()
    print(f"  Submission {sub.id}: {final.status.value}")
    await print_ledger(services, sub.id)
    await print_audit_trail(services, sub.id)


async def scenario_e(services: Services, clock: ManualClock) -> None:
    section("Scenario E: duplicate dispute rejected")
    order_id = await _delivered_order(services)
    first = (await services.orders.open_dispute(order_id, BUYER, "Missing source files")).unwrap()
    second = await services.disputes.open(SubjectKind.ORDER, order_id, SELLER, "Buyer is unresponsive")
    print(f"  First dispute {first.id}: {first.status.value}")
    print(f"  Second attempt: {second.error.code} ({second.error.message})")

    unchanged = (await services.disputes.get_dispute(first.id)).unwrap()
    print(f"  First dispute still {unchanged.status.value}, version {unchanged.version}")


SCENARIOS = {
    "A": scenario_a,
    "B": scenario_b,
    "C": scenario_c,
    "D": scenario_d,
    "E": scenario_e,
}


# ===========================================================================
# Main
# ===========================================================================
async def run(names: list[str], use_sqlite: bool = False) -> None:
    clock = ManualClock()
    services = await init_services(clock, use_sqlite=use_sqlite)
    try:
        print("\n" + "=" * 70)
        print("  MARKETPLACE ESCROW: SIMULATION")
        print(f"  Storage: {'SQLite (in-memory)' if use_sqlite else 'in-memory stores'}")
        print("=" * 70)

        for name in names:
            await SCENARIOS[name](services, clock)

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await shutdown(services)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Marketplace Escrow Simulation")
    parser.add_argument(
        "--scenario",
        choices=sorted(SCENARIOS),
        default=None,
        help="Run a specific scenario (A-E). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use the SQLAlchemy stores over SQLite in-memory instead of the memory stores.",
    )
    args = parser.parse_args()

    selected = [args.scenario] if args.scenario else sorted(SCENARIOS)
    asyncio.run(run(selected, use_sqlite=args.sqlite))
