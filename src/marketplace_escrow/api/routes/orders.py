"""Order REST API routes.

Each route is a thin adapter over OrderService: the service returns a
CommandResult and the route turns it into a response model. Business
failures are raised as MarketplaceError and mapped to HTTP statuses by
ErrorHandlerMiddleware.

Routes:
    POST   /api/v1/orders                           Place an order
    GET    /api/v1/orders                           List by user (and role) or status
    GET    /api/v1/orders/{id}                      Get order details
    GET    /api/v1/orders/{id}/time-remaining       Countdown to the active deadline
    GET    /api/v1/orders/{id}/audit                Audit trail
    POST   /api/v1/orders/{id}/accept               Seller accepts
    POST   /api/v1/orders/{id}/decline              Seller declines (refund)
    POST   /api/v1/orders/{id}/start                Seller starts work
    POST   /api/v1/orders/{id}/extension            Seller requests more time
    POST   /api/v1/orders/{id}/extension/approve    Buyer grants the extension
    POST   /api/v1/orders/{id}/extension/reject     Buyer refuses the extension
    POST   /api/v1/orders/{id}/deliver              Seller delivers
    POST   /api/v1/orders/{id}/release              Buyer releases payment
    POST   /api/v1/orders/{id}/cancel               Either party cancels (refund)
    POST   /api/v1/orders/{id}/dispute              Either party opens a dispute
    POST   /api/v1/orders/{id}/dispute/resolve      Admin resolves the dispute
    POST   /api/v1/orders/{id}/messages             Append to the message log
    PUT    /api/v1/orders/{id}/requirements         Buyer edits requirements
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from marketplace_escrow.api.deps import IdempotencyGuard, get_services, idempotency, to_response
from marketplace_escrow.domain.enums import ActorRole, OrderStatus
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.schemas.common import (
    ActorRequest,
    AuditEntryResponse,
    ReasonRequest,
    ResolveDisputeRequest,
)
from marketplace_escrow.schemas.disputes import DisputeResponse
from marketplace_escrow.schemas.orders import (
    DeliveryRequest,
    ExtensionRequest,
    MessageRequest,
    OpenOrderDisputeRequest,
    OrderResponse,
    PlaceOrderRequest,
    RequirementsRequest,
    TimeRemainingResponse,
)
from marketplace_escrow.services.container import Services

router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Place & query
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=OrderResponse,
    status_code=201,
    summary="Place an order and reserve its price in escrow",
)
async def place_order(
    request: PlaceOrderRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.place_order(
        buyer_id=request.buyer_id,
        seller_id=request.seller_id,
        price=request.price,
        delivery_days=request.delivery_days,
        service_id=request.service_id,
        service_name=request.service_name,
        tier=request.tier,
        requirements=request.requirements,
        order_id=request.order_id,
    )
    return await guard.respond(result, OrderResponse, status_code=201)


@router.get("", response_model=list[OrderResponse], summary="List orders")
async def list_orders(
    user_id: str | None = Query(default=None, description="Buyer or seller id"),
    role: ActorRole | None = Query(default=None, description="buyer or seller"),
    status: list[OrderStatus] | None = Query(default=None),
    services: Services = Depends(get_services),
) -> list[OrderResponse]:
    """Orders of one user (optionally one side), or every order in the given statuses."""
    if user_id is not None:
        orders = await services.orders.list_orders_by_user(user_id, role)
        if status:
            orders = [o for o in orders if o.status in status]
    else:
        orders = await services.orders.list_orders_by_status(*(status or ()))
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order details")
async def get_order(order_id: str, services: Services = Depends(get_services)) -> OrderResponse:
    return to_response(await services.orders.get_order(order_id), OrderResponse)


@router.get(
    "/{order_id}/time-remaining",
    response_model=TimeRemainingResponse,
    summary="Time left before the order's active deadline",
)
async def get_time_remaining(order_id: str, services: Services = Depends(get_services)) -> TimeRemainingResponse:
    return to_response(await services.orders.get_time_remaining(order_id), TimeRemainingResponse)


@router.get(
    "/{order_id}/audit",
    response_model=list[AuditEntryResponse],
    summary="Immutable audit trail of the order",
)
async def get_audit_trail(order_id: str, services: Services = Depends(get_services)) -> list[AuditEntryResponse]:
    to_response(await services.orders.get_order(order_id), OrderResponse)
    entries = await services.orders.get_audit_trail(order_id)
    return [AuditEntryResponse.model_validate(e) for e in entries]


# ---------------------------------------------------------------------------
# Seller response
# ---------------------------------------------------------------------------


@router.post("/{order_id}/accept", response_model=OrderResponse, summary="Seller accepts the order")
async def accept_order(
    order_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    return await guard.respond(await services.orders.accept(order_id, request.actor_id), OrderResponse)


@router.post("/{order_id}/decline", response_model=OrderResponse, summary="Seller declines; buyer refunded")
async def decline_order(
    order_id: str,
    request: ReasonRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.decline(order_id, request.actor_id, request.reason)
    return await guard.respond(result, OrderResponse)


@router.post("/{order_id}/start", response_model=OrderResponse, summary="Seller starts work")
async def start_order(
    order_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    return await guard.respond(await services.orders.start(order_id, request.actor_id), OrderResponse)


# ---------------------------------------------------------------------------
# Extensions
# ---------------------------------------------------------------------------


@router.post("/{order_id}/extension", response_model=OrderResponse, summary="Seller requests an extension")
async def request_extension(
    order_id: str,
    request: ExtensionRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.request_extension(order_id, request.actor_id, request.days, request.reason)
    return await guard.respond(result, OrderResponse)


@router.post("/{order_id}/extension/approve", response_model=OrderResponse, summary="Buyer grants the extension")
async def approve_extension(
    order_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.approve_extension(order_id, request.actor_id)
    return await guard.respond(result, OrderResponse)


@router.post("/{order_id}/extension/reject", response_model=OrderResponse, summary="Buyer refuses the extension")
async def reject_extension(
    order_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.reject_extension(order_id, request.actor_id)
    return await guard.respond(result, OrderResponse)


# ---------------------------------------------------------------------------
# Delivery & settlement
# ---------------------------------------------------------------------------


@router.post("/{order_id}/deliver", response_model=OrderResponse, summary="Seller delivers the work")
async def deliver_order(
    order_id: str,
    request: DeliveryRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.submit_delivery(
        order_id, request.actor_id, request.message, request.files, request.links
    )
    return await guard.respond(result, OrderResponse)


@router.post("/{order_id}/release", response_model=OrderResponse, summary="Buyer releases payment to the seller")
async def release_payment(
    order_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    """A second release on a completed order answers 200 ``already_processed``."""
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.release_payment(order_id, request.actor_id)
    return await guard.respond(result, OrderResponse)


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel the order; buyer refunded")
async def cancel_order(
    order_id: str,
    request: ReasonRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> OrderResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.cancel(order_id, request.actor_id, request.reason)
    return await guard.respond(result, OrderResponse)


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


@router.post(
    "/{order_id}/dispute",
    response_model=DisputeResponse,
    status_code=201,
    summary="Open a dispute on a delivered order",
)
async def open_dispute(
    order_id: str,
    request: OpenOrderDisputeRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> DisputeResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.open_dispute(
        order_id, request.actor_id, request.reason, request.details, request.evidence
    )
    return await guard.respond(result, DisputeResponse, status_code=201)


@router.post(
    "/{order_id}/dispute/resolve",
    response_model=DisputeResponse,
    summary="Admin resolves the order's dispute",
)
async def resolve_dispute(
    order_id: str,
    request: ResolveDisputeRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> DisputeResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.orders.resolve_dispute(order_id, request.admin_id, request.decision, request.notes)
    return await guard.respond(result, DisputeResponse)


# ---------------------------------------------------------------------------
# Side channels
# ---------------------------------------------------------------------------


@router.post("/{order_id}/messages", response_model=OrderResponse, summary="Append a message to the order")
async def add_message(
    order_id: str,
    request: MessageRequest,
    services: Services = Depends(get_services),
) -> OrderResponse:
    result = await services.orders.add_message(order_id, request.actor_id, request.message, request.files)
    return to_response(result, OrderResponse)


@router.put("/{order_id}/requirements", response_model=OrderResponse, summary="Buyer edits the requirements")
async def update_requirements(
    order_id: str,
    request: RequirementsRequest,
    services: Services = Depends(get_services),
) -> OrderResponse:
    result = await services.orders.update_requirements(order_id, request.actor_id, request.requirements)
    return to_response(result, OrderResponse)
