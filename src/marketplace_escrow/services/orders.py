"""Order Service: the marketplace order lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Stores (orders, escrow ledger, audit log) inside one unit of work
    - Event bus (notifications, projections)

REST routes, the timeout sweeper and the simulation all call into this
service, so manual and automatic transitions share one code path. Public
commands return a CommandResult; business-rule violations never escape as
exceptions.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.clock import deadline_after, is_past, time_remaining
from marketplace_escrow.domain.enums import (
    ActorRole,
    EventType,
    OrderStatus,
    SubjectKind,
)
from marketplace_escrow.domain.exceptions import (
    AlreadyCompletedError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    OrderNotFoundError,
    ValidationFailedError,
)
from marketplace_escrow.domain.models import Deliverables, Order, OrderMessage, to_money
from marketplace_escrow.domain.results import command
from marketplace_escrow.domain.state_machine import OrderStateMachine, validate_transition
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.context import SYSTEM_ACTOR

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from decimal import Decimal

    from marketplace_escrow.domain.models import AuditEntry, Dispute
    from marketplace_escrow.domain.results import CommandResult
    from marketplace_escrow.domain.settlement import MarketplacePolicy
    from marketplace_escrow.services.context import ServiceContext, Transaction
    from marketplace_escrow.services.disputes import DisputeService

logger = get_logger(__name__)

ACCEPTANCE_REMINDER = "acceptance"
REVIEW_REMINDER = "review"


class OrderService:
    """Manages the marketplace order lifecycle."""

    def __init__(self, ctx: ServiceContext, disputes: DisputeService) -> None:
        self._ctx = ctx
        self._disputes = disputes

    @property
    def policy(self) -> MarketplacePolicy:
        return self._ctx.policy

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    @command
    async def place_order(
        self,
        buyer_id: str,
        seller_id: str,
        price: Decimal | int | str,
        delivery_days: int,
        service_id: str = "",
        service_name: str = "",
        tier: str = "basic",
        requirements: str = "",
        order_id: str | None = None,
    ) -> Order:
        """Create an order in awaiting_acceptance and reserve its price."""
        amount = to_money(price)
        if amount <= 0:
            raise ValidationFailedError("Price must be positive", field="price")
        if delivery_days < 1:
            raise ValidationFailedError("Delivery time must be at least one day", field="delivery_days")
        if buyer_id == seller_id:
            raise ValidationFailedError("Buyer and seller must differ", field="seller_id")

        order_id = order_id or f"ORD-{uuid.uuid4().hex[:12].upper()}"
        now = self._ctx.now()
        order = Order(
            id=order_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            price=amount,
            delivery_days=delivery_days,
            status=OrderStatus.AWAITING_ACCEPTANCE,
            created_at=now,
            acceptance_deadline=deadline_after(now, self.policy.acceptance_window),
            service_id=service_id,
            service_name=service_name,
            tier=tier,
            requirements=requirements.strip(),
        )

        async with self._ctx.transaction(order_id) as tx:
            order = await tx.stores.orders.add(order)
            await tx.stores.ledger.reserve(order_id, SubjectKind.ORDER, buyer_id, amount)
            await tx.stores.audit.record(
                SubjectKind.ORDER,
                order_id,
                EventType.ORDER_PLACED,
                actor=buyer_id,
                new_status=order.status.value,
                metadata={"price": str(amount), "service_id": service_id, "tier": tier},
            )
            tx.emit(
                EventType.ORDER_PLACED,
                SubjectKind.ORDER,
                order_id,
                buyer_id,
                now,
                new_status=order.status.value,
                **self._parties(order),
                price=str(amount),
            )

        logger.info("order.placed", order_id=order_id, price=str(amount), seller_id=seller_id)
        return order

    # ------------------------------------------------------------------
    # Seller response
    # ------------------------------------------------------------------

    @command
    async def accept(self, order_id: str, seller_id: str) -> Order:
        """Seller accepts; the order moves to pending with a provisional delivery deadline."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, seller_id, ActorRole.SELLER, "accept this order")
            now = self._ctx.now()
            if order.status is OrderStatus.AWAITING_ACCEPTANCE and is_past(order.acceptance_deadline, now):
                raise ExpiredError(order_id, order.acceptance_deadline.isoformat())

            old = self._advance(order, "seller_accepts")
            order.accepted_at = now
            order.expires_at = deadline_after(now, self._delivery_window(order))
            order = await self._save(tx, order, old, seller_id, now)

        logger.info("order.accepted", order_id=order_id, seller_id=seller_id)
        return order

    @command
    async def decline(self, order_id: str, seller_id: str, reason: str) -> Order:
        """Seller declines; the order is cancelled and the buyer fully refunded."""
        reason = self._ctx.require_text(reason, "reason")
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, seller_id, ActorRole.SELLER, "decline this order")
            order = await self._cancel_and_refund(tx, order, "seller_declines", seller_id, reason)

        logger.info("order.declined", order_id=order_id, seller_id=seller_id)
        return order

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    @command
    async def start(self, order_id: str, seller_id: str) -> Order:
        """Seller starts work; the delivery clock restarts from now."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, seller_id, ActorRole.SELLER, "start this order")
            now = self._ctx.now()
            if order.status is OrderStatus.PENDING and is_past(order.expires_at, now):
                raise ExpiredError(order_id, order.expires_at.isoformat())  # type: ignore[union-attr]

            old = self._advance(order, "work_started")
            order.started_at = now
            order.expires_at = deadline_after(now, self._delivery_window(order))
            order = await self._save(tx, order, old, seller_id, now)

        logger.info("order.started", order_id=order_id, expires_at=order.expires_at.isoformat())
        return order

    @command
    async def request_extension(self, order_id: str, seller_id: str, days: int, reason: str) -> Order:
        """Seller asks the buyer for more delivery time. One request per order."""
        reason = self._ctx.require_text(reason, "reason")
        if not 1 <= days <= self.policy.max_extension_days:
            raise ValidationFailedError(
                f"Extension must be between 1 and {self.policy.max_extension_days} days",
                field="days",
            )

        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, seller_id, ActorRole.SELLER, "request an extension")
            if order.status is not OrderStatus.IN_PROGRESS:
                raise InvalidStateError(order.status.value, "request_extension")
            if order.extension_requested:
                raise ConflictError(f"An extension request is already pending for {order_id}")
            if order.extension_granted_days:
                raise ConflictError(f"Order {order_id} already received its extension")
            now = self._ctx.now()
            if is_past(order.expires_at, now):
                raise ExpiredError(order_id, order.expires_at.isoformat())  # type: ignore[union-attr]

            expected = order.version
            order.extension_requested = True
            order.extension_days = days
            order.extension_reason = reason
            order = await tx.stores.orders.compare_and_swap(order, expected)
            await tx.stores.audit.record(
                SubjectKind.ORDER,
                order_id,
                EventType.EXTENSION_REQUESTED,
                actor=seller_id,
                metadata={"days": days, "reason": reason},
            )
            tx.emit(
                EventType.EXTENSION_REQUESTED,
                SubjectKind.ORDER,
                order_id,
                seller_id,
                now,
                **self._parties(order),
                days=days,
                reason=reason,
            )

        logger.info("order.extension_requested", order_id=order_id, days=days)
        return order

    @command
    async def approve_extension(self, order_id: str, buyer_id: str) -> Order:
        return await self._answer_extension(order_id, buyer_id, approved=True)

    @command
    async def reject_extension(self, order_id: str, buyer_id: str) -> Order:
        return await self._answer_extension(order_id, buyer_id, approved=False)

    async def _answer_extension(self, order_id: str, buyer_id: str, approved: bool) -> Order:
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, buyer_id, ActorRole.BUYER, "answer an extension request")
            if not order.extension_requested or order.status.is_terminal:
                raise InvalidStateError(order.status.value, "answer_extension", "No pending extension request")

            now = self._ctx.now()
            expected = order.version
            days = order.extension_days or 0
            old_deadline = order.expires_at
            if approved:
                order.extension_granted_days += days
                if order.expires_at is not None:
                    order.expires_at = max(order.expires_at, order.expires_at + timedelta(days=days))
            order.extension_requested = False
            order.extension_days = None
            order.extension_reason = None
            order = await tx.stores.orders.compare_and_swap(order, expected)
            await tx.stores.audit.record(
                SubjectKind.ORDER,
                order_id,
                EventType.EXTENSION_ANSWERED,
                actor=buyer_id,
                metadata={
                    "approved": approved,
                    "days": days,
                    "expires_at_before": old_deadline.isoformat() if old_deadline else None,
                    "expires_at_after": order.expires_at.isoformat() if order.expires_at else None,
                },
            )
            tx.emit(
                EventType.EXTENSION_ANSWERED,
                SubjectKind.ORDER,
                order_id,
                buyer_id,
                now,
                **self._parties(order),
                approved=approved,
                days=days,
            )

        logger.info("order.extension_answered", order_id=order_id, approved=approved, days=days)
        return order

    @command
    async def submit_delivery(
        self,
        order_id: str,
        seller_id: str,
        message: str,
        files: Sequence[str] = (),
        links: Sequence[str] = (),
    ) -> Order:
        """Seller delivers; the buyer's review period starts."""
        message = self._ctx.require_text(message, "message")
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, seller_id, ActorRole.SELLER, "deliver this order")
            now = self._ctx.now()
            if order.status is OrderStatus.IN_PROGRESS and is_past(order.expires_at, now):
                raise ExpiredError(order_id, order.expires_at.isoformat())  # type: ignore[union-attr]

            old = self._advance(order, "work_delivered")
            order.deliverables = Deliverables(message, tuple(files), tuple(links), now)
            order.delivered_at = now
            order.review_deadline = deadline_after(now, self.policy.review_period)
            order.extension_requested = False
            order.extension_days = None
            order.extension_reason = None
            order = await self._save(
                tx, order, old, seller_id, now, metadata={"files": len(files), "links": len(links)}
            )

        logger.info("order.delivered", order_id=order_id, review_deadline=order.review_deadline.isoformat())
        return order

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    @command
    async def release_payment(self, order_id: str, buyer_id: str) -> Order:
        """Buyer approves the delivery; the full price goes to the seller."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, buyer_id, ActorRole.BUYER, "release payment")
            order = await self._release(tx, order, buyer_id)

        logger.info("order.payment_released", order_id=order_id, amount=str(order.price))
        return order

    @command
    async def cancel(self, order_id: str, actor_id: str, reason: str) -> Order:
        """Either party (or an admin) cancels with justification; the buyer is fully refunded."""
        reason = self._ctx.require_justification(reason, "reason")
        is_admin = await self._ctx.identity.is_admin(actor_id)
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            if order.role_of(actor_id) is None and not is_admin:
                raise ForbiddenError(actor_id, "cancel this order")
            order = await self._cancel_and_refund(tx, order, "order_cancelled", actor_id, reason)

        logger.info("order.cancelled", order_id=order_id, actor=actor_id)
        return order

    # ------------------------------------------------------------------
    # Disputes (delegated to the dispute aggregate)
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        order_id: str,
        actor_id: str,
        reason: str,
        details: str = "",
        evidence: Sequence[str] = (),
    ) -> CommandResult[Dispute]:
        """Open a dispute on a delivered order."""
        return await self._disputes.open(SubjectKind.ORDER, order_id, actor_id, reason, details, evidence)

    async def resolve_dispute(
        self, order_id: str, admin_id: str, decision: str, notes: str
    ) -> CommandResult[Dispute]:
        """Resolve the order's open dispute in one transaction with the order."""
        return await self._disputes.resolve_for_subject(order_id, admin_id, decision, notes)

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------

    @command
    async def update_requirements(self, order_id: str, buyer_id: str, requirements: str) -> Order:
        """Buyer edits the requirements before work starts."""
        requirements = self._ctx.require_text(requirements, "requirements")
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            self._require_role(order, buyer_id, ActorRole.BUYER, "update requirements")
            if order.status not in (OrderStatus.AWAITING_ACCEPTANCE, OrderStatus.PENDING):
                raise InvalidStateError(order.status.value, "update_requirements")

            now = self._ctx.now()
            expected = order.version
            order.requirements = requirements
            order = await tx.stores.orders.compare_and_swap(order, expected)
            await tx.stores.audit.record(
                SubjectKind.ORDER, order_id, EventType.REQUIREMENTS_UPDATED, actor=buyer_id
            )
            tx.emit(EventType.REQUIREMENTS_UPDATED, SubjectKind.ORDER, order_id, buyer_id, now, **self._parties(order))
        return order

    @command
    async def add_message(
        self,
        order_id: str,
        sender_id: str,
        message: str,
        files: Sequence[str] = (),
    ) -> Order:
        """Append to the order's message log. Terminal orders are read-only."""
        message = self._ctx.require_text(message, "message")
        is_admin = await self._ctx.identity.is_admin(sender_id)
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            role = order.role_of(sender_id)
            if role is None:
                if not is_admin:
                    raise ForbiddenError(sender_id, "message on this order")
                role = ActorRole.ADMIN
            if order.status.is_terminal:
                raise InvalidStateError(order.status.value, "add_message")

            now = self._ctx.now()
            expected = order.version
            order.messages.append(
                OrderMessage(
                    id=uuid.uuid4().hex,
                    sender_id=sender_id,
                    sender_role=role,
                    message=message,
                    files=tuple(files),
                    sent_at=now,
                )
            )
            order = await tx.stores.orders.compare_and_swap(order, expected)
            recipients = [p for p in (order.buyer_id, order.seller_id) if p != sender_id]
            tx.emit(
                EventType.MESSAGE_ADDED,
                SubjectKind.ORDER,
                order_id,
                sender_id,
                now,
                **self._parties(order),
                recipients=recipients,
                preview=message[:120],
            )
        return order

    # ------------------------------------------------------------------
    # Automatic actions (timeout sweeper)
    # ------------------------------------------------------------------

    @command
    async def expire_acceptance(self, order_id: str) -> Order:
        """Cancel an order the seller never answered, refunding the buyer."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            if not (
                order.status is OrderStatus.AWAITING_ACCEPTANCE
                and is_past(order.acceptance_deadline, self._ctx.now())
            ):
                raise InvalidStateError(order.status.value, "acceptance_expired", "Nothing to expire")
            order = await self._cancel_and_refund(
                tx, order, "acceptance_expired", SYSTEM_ACTOR, "Seller did not respond in time"
            )
        logger.info("sweeper.order_acceptance_expired", order_id=order_id)
        return order

    @command
    async def expire_delivery(self, order_id: str) -> Order:
        """Cancel a pending / in-progress order whose delivery deadline passed."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            if not (
                order.status in (OrderStatus.PENDING, OrderStatus.IN_PROGRESS)
                and is_past(order.expires_at, self._ctx.now())
            ):
                raise InvalidStateError(order.status.value, "delivery_expired", "Nothing to expire")
            order = await self._cancel_and_refund(
                tx, order, "delivery_expired", SYSTEM_ACTOR, "Delivery deadline passed"
            )
        logger.info("sweeper.order_delivery_expired", order_id=order_id)
        return order

    @command
    async def auto_release(self, order_id: str) -> Order:
        """Release payment for a delivery the buyer never reviewed."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            if order.status is OrderStatus.COMPLETED:
                raise AlreadyCompletedError(order_id)
            if not (
                self.policy.auto_release_payment
                and order.status is OrderStatus.DELIVERED
                and is_past(order.review_deadline, self._ctx.now())
            ):
                raise InvalidStateError(order.status.value, "payment_released", "Review period still running")
            order = await self._release(tx, order, SYSTEM_ACTOR)
        logger.info("sweeper.order_auto_released", order_id=order_id, amount=str(order.price))
        return order

    @command
    async def send_reminder(self, order_id: str, reminder: str) -> Order:
        """Record and publish a deadline reminder, at most once per kind."""
        async with self._ctx.transaction(order_id) as tx:
            order = await self._load(tx, order_id)
            if reminder in order.reminders_sent:
                raise ConflictError(f"Reminder '{reminder}' already sent for {order_id}")
            expected_status = (
                OrderStatus.AWAITING_ACCEPTANCE if reminder == ACCEPTANCE_REMINDER else OrderStatus.DELIVERED
            )
            if order.status is not expected_status:
                raise InvalidStateError(order.status.value, f"{reminder}_reminder")

            now = self._ctx.now()
            expected = order.version
            order.reminders_sent.append(reminder)
            order = await tx.stores.orders.compare_and_swap(order, expected)
            hours = (
                self.policy.acceptance_reminder_hours
                if reminder == ACCEPTANCE_REMINDER
                else self.policy.review_reminder_hours
            )
            await tx.stores.audit.record(
                SubjectKind.ORDER,
                order_id,
                EventType.DEADLINE_REMINDER,
                actor=SYSTEM_ACTOR,
                metadata={"reminder": reminder},
            )
            tx.emit(
                EventType.DEADLINE_REMINDER,
                SubjectKind.ORDER,
                order_id,
                SYSTEM_ACTOR,
                now,
                **self._parties(order),
                reminder=reminder,
                hours=hours,
            )
        logger.info("sweeper.reminder_sent", order_id=order_id, reminder=reminder)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @command
    async def get_order(self, order_id: str) -> Order:
        async with self._ctx.read() as stores:
            order = await stores.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders_by_user(self, user_id: str, role: ActorRole | str | None = None) -> list[Order]:
        """Orders where ``user_id`` is the buyer, the seller, or either."""
        role = ActorRole(role) if role else None
        async with self._ctx.read() as stores:
            if role is ActorRole.BUYER:
                return await stores.orders.list(buyer_id=user_id)
            if role is ActorRole.SELLER:
                return await stores.orders.list(seller_id=user_id)
            bought = await stores.orders.list(buyer_id=user_id)
            sold = await stores.orders.list(seller_id=user_id)
        return sorted([*bought, *sold], key=lambda o: o.created_at, reverse=True)

    async def list_orders_by_status(self, *statuses: OrderStatus) -> list[Order]:
        async with self._ctx.read() as stores:
            return await stores.orders.list(statuses=statuses or None)

    async def list_disputed_orders(self) -> list[Order]:
        return await self.list_orders_by_status(OrderStatus.DISPUTED)

    @command
    async def get_time_remaining(self, order_id: str) -> dict[str, Any]:
        """Time left on whichever deadline currently governs the order.

        ``pending_automatic_action`` is true once the deadline has passed
        but the sweeper has not applied the outcome yet.
        """
        order = (await self.get_order(order_id)).unwrap()
        name, deadline = self.active_deadline(order)
        if deadline is None:
            return {"order_id": order_id, "deadline": None, "kind": None, "remaining": None}
        now = self._ctx.now()
        return {
            "order_id": order_id,
            "kind": name,
            "deadline": deadline.isoformat(),
            "remaining": time_remaining(deadline, now).to_dict(),
            "pending_automatic_action": is_past(deadline, now),
        }

    @staticmethod
    def active_deadline(order: Order) -> tuple[str | None, datetime | None]:
        if order.status is OrderStatus.AWAITING_ACCEPTANCE:
            return "acceptance", order.acceptance_deadline
        if order.status in (OrderStatus.PENDING, OrderStatus.IN_PROGRESS):
            return "delivery", order.expires_at
        if order.status is OrderStatus.DELIVERED:
            return "review", order.review_deadline
        return None, None

    async def get_audit_trail(self, order_id: str) -> list[AuditEntry]:
        async with self._ctx.read() as stores:
            return await stores.audit.list_for_subject(order_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self, tx: Transaction, order_id: str) -> Order:
        order = await tx.stores.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    def _require_role(order: Order, actor_id: str, role: ActorRole, action: str) -> None:
        if order.role_of(actor_id) is not role:
            raise ForbiddenError(actor_id, action)

    @staticmethod
    def _advance(order: Order, event_name: str) -> OrderStatus:
        """Fire ``event_name`` on the order's state machine; returns the old status."""
        old = order.status
        order.status = OrderStatus(validate_transition(old.value, event_name, OrderStateMachine))
        return old

    @staticmethod
    def _delivery_window(order: Order) -> timedelta:
        return timedelta(days=order.delivery_days + order.extension_granted_days)

    @staticmethod
    def _parties(order: Order) -> dict[str, Any]:
        return {
            "buyer_id": order.buyer_id,
            "seller_id": order.seller_id,
            "service_name": order.service_name,
        }

    async def _save(
        self,
        tx: Transaction,
        order: Order,
        old: OrderStatus,
        actor: str,
        now: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> Order:
        """CAS-write a status change, audit it and queue the status event."""
        saved = await tx.stores.orders.compare_and_swap(order, order.version)
        await tx.stores.audit.record(
            SubjectKind.ORDER,
            order.id,
            EventType.ORDER_STATUS_CHANGED,
            actor=actor,
            old_status=old.value,
            new_status=saved.status.value,
            metadata=metadata,
        )
        tx.emit(
            EventType.ORDER_STATUS_CHANGED,
            SubjectKind.ORDER,
            order.id,
            actor,
            now,
            old_status=old.value,
            new_status=saved.status.value,
            **self._parties(saved),
        )
        return saved

    async def _release(self, tx: Transaction, order: Order, actor: str) -> Order:
        if order.status is OrderStatus.COMPLETED:
            raise AlreadyCompletedError(order.id)
        now = self._ctx.now()
        old = self._advance(order, "payment_released")
        reservation = await tx.stores.ledger.release(order.id, order.seller_id, order.price)
        order.completed_at = now
        order = await self._save(
            tx, order, old, actor, now, metadata={"ledger": reservation.snapshot()}
        )
        tx.emit(
            EventType.PAYMENT_RELEASED,
            SubjectKind.ORDER,
            order.id,
            actor,
            now,
            old_status=old.value,
            new_status=order.status.value,
            **self._parties(order),
            amount=str(order.price),
        )
        return order

    async def _cancel_and_refund(
        self,
        tx: Transaction,
        order: Order,
        event_name: str,
        actor: str,
        reason: str,
    ) -> Order:
        now = self._ctx.now()
        old = self._advance(order, event_name)
        reservation = await tx.stores.ledger.refund(order.id)
        order.cancellation_reason = reason
        order.cancelled_by = actor
        order.extension_requested = False
        order = await self._save(
            tx,
            order,
            old,
            actor,
            now,
            metadata={"reason": reason, "trigger": event_name, "ledger": reservation.snapshot()},
        )
        tx.emit(
            EventType.PAYMENT_REFUNDED,
            SubjectKind.ORDER,
            order.id,
            actor,
            now,
            old_status=old.value,
            new_status=order.status.value,
            **self._parties(order),
            amount=str(reservation.amount),
        )
        return order
