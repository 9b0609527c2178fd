"""Wiring of the application services around one store factory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from marketplace_escrow.domain.clock import utc_now
from marketplace_escrow.services.context import ServiceContext, StaticIdentityProvider
from marketplace_escrow.services.disputes import DisputeService
from marketplace_escrow.services.events import EventBus
from marketplace_escrow.services.notifications import LoggingNotificationSink, NotificationService
from marketplace_escrow.services.orders import OrderService
from marketplace_escrow.services.submissions import SubmissionService
from marketplace_escrow.services.sweeper import TimeoutSweeper

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marketplace_escrow.domain.clock import Clock
    from marketplace_escrow.domain.ports import IdentityProvider, NotificationSink, StoreFactory
    from marketplace_escrow.domain.settlement import MarketplacePolicy


@dataclass
class Services:
    ctx: ServiceContext
    bus: EventBus
    orders: OrderService
    submissions: SubmissionService
    disputes: DisputeService
    notifications: NotificationService
    sweeper: TimeoutSweeper


def build_services(
    store_factory: StoreFactory,
    policy: MarketplacePolicy | None = None,
    *,
    admin_ids: Iterable[str] = (),
    identity: IdentityProvider | None = None,
    sink: NotificationSink | None = None,
    clock: Clock = utc_now,
    notification_timeout: float = 5.0,
    sweep_interval_seconds: float = 60.0,
) -> Services:
    """Build every service sharing one context, bus and lock table.

    Usage:
        services = build_services(MemoryStoreFactory(), admin_ids=["admin"])
        result = await services.orders.place_order(...)
    """
    bus = EventBus(handler_timeout=notification_timeout)
    ctx = ServiceContext(
        store_factory,
        bus,
        policy=policy,
        identity=identity or StaticIdentityProvider(admin_ids),
        clock=clock,
    )
    notifications = NotificationService(sink or LoggingNotificationSink())
    bus.subscribe(notifications.handle)

    disputes = DisputeService(ctx)
    orders = OrderService(ctx, disputes)
    submissions = SubmissionService(ctx, disputes)
    sweeper = TimeoutSweeper(ctx, orders, submissions, interval_seconds=sweep_interval_seconds)
    return Services(
        ctx=ctx,
        bus=bus,
        orders=orders,
        submissions=submissions,
        disputes=disputes,
        notifications=notifications,
        sweeper=sweeper,
    )
