"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to reach the application
services built by the lifespan and the Redis idempotency cache.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import Header, Request
from fastapi.responses import JSONResponse

from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.container import Services  # noqa: TC001 - FastAPI needs it at runtime

if TYPE_CHECKING:
    from pydantic import BaseModel

    from marketplace_escrow.domain.results import CommandResult
    from marketplace_escrow.infrastructure.redis_client import IdempotencyCache

logger = get_logger(__name__)


def get_services(request: Request) -> Services:
    """Provide the service container created at startup."""
    return request.app.state.services


def to_response(result: CommandResult[Any], schema: type[BaseModel]) -> BaseModel:
    """Convert a command result into a response model.

    Failures are re-raised as MarketplaceError; ErrorHandlerMiddleware maps
    the error code to the HTTP status.
    """
    return schema.model_validate(result.unwrap())


class IdempotencyGuard:
    """Replays the stored response of a repeated ``Idempotency-Key``."""

    def __init__(self, cache: IdempotencyCache | None, scope: str, key: str | None) -> None:
        self._cache = cache
        self._scope = scope
        self._key = key

    @property
    def active(self) -> bool:
        return self._cache is not None and self._key is not None

    async def replay(self) -> JSONResponse | None:
        if not self.active:
            return None
        stored = await self._cache.lookup(self._scope, self._key)  # type: ignore[union-attr, arg-type]
        if stored is None:
            return None
        return JSONResponse(status_code=stored["status_code"], content=stored["body"])

    async def respond(
        self,
        result: CommandResult[Any],
        schema: type[BaseModel],
        status_code: int = 200,
    ) -> BaseModel:
        """Build the response for ``result`` and remember it if it succeeded."""
        response = to_response(result, schema)
        if self.active:
            await self._cache.remember(  # type: ignore[union-attr]
                self._scope,
                self._key,  # type: ignore[arg-type]
                {"status_code": status_code, "body": response.model_dump(mode="json")},
            )
        return response


async def idempotency(
    request: Request,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> IdempotencyGuard:
    """Provide an IdempotencyGuard scoped to the request's method and path."""
    cache = getattr(request.app.state, "idempotency", None)
    if idempotency_key and cache is None:
        logger.warning("idempotency.unavailable", path=request.url.path)
    return IdempotencyGuard(cache, f"{request.method}:{request.url.path}", idempotency_key)
