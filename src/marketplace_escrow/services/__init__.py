"""Application services: order, submission and dispute use cases plus the sweeper."""

from marketplace_escrow.services.container import Services, build_services
from marketplace_escrow.services.context import ServiceContext, StaticIdentityProvider
from marketplace_escrow.services.disputes import DisputeService
from marketplace_escrow.services.events import EventBus
from marketplace_escrow.services.notifications import LoggingNotificationSink, NotificationService
from marketplace_escrow.services.orders import OrderService
from marketplace_escrow.services.submissions import SubmissionService
from marketplace_escrow.services.sweeper import SweepReport, TimeoutSweeper

__all__ = [
    "DisputeService",
    "EventBus",
    "LoggingNotificationSink",
    "NotificationService",
    "OrderService",
    "ServiceContext",
    "Services",
    "StaticIdentityProvider",
    "SubmissionService",
    "SweepReport",
    "TimeoutSweeper",
    "build_services",
]
