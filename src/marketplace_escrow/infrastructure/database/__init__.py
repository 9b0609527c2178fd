"""Database infrastructure: engine, ORM models, and the SQLAlchemy stores."""

from marketplace_escrow.infrastructure.database.engine import (
    build_engine,
    close_db,
    create_tables,
    get_session_factory,
    init_db,
    make_session_factory,
)
from marketplace_escrow.infrastructure.database.orm_models import (
    AuditEventRow,
    Base,
    DisputeRow,
    OrderRow,
    ReservationRow,
    SubmissionRow,
)
from marketplace_escrow.infrastructure.database.repositories import (
    SqlAlchemyStoreFactory,
    SqlAuditLog,
    SqlDisputeRepository,
    SqlEscrowLedger,
    SqlOrderRepository,
    SqlSubmissionRepository,
)

__all__ = [
    "AuditEventRow",
    "Base",
    "DisputeRow",
    "OrderRow",
    "ReservationRow",
    "SubmissionRow",
    "SqlAlchemyStoreFactory",
    "SqlAuditLog",
    "SqlDisputeRepository",
    "SqlEscrowLedger",
    "SqlOrderRepository",
    "SqlSubmissionRepository",
    "build_engine",
    "close_db",
    "create_tables",
    "get_session_factory",
    "init_db",
    "make_session_factory",
]
