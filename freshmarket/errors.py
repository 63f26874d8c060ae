"""
Domain errors.

Services raise these; the handlers registered in ``freshmarket.main`` turn
them into ``{"detail": ...}`` responses with the matching status code.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketError(Exception):
    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or "Error"
        super().__init__(self.message)


class ValidationError(MarketError):
    """Invalid request"""
    status_code = 400


class UnauthorizedError(MarketError):
    """Not authenticated"""
    status_code = 401


class ForbiddenError(MarketError):
    """Forbidden"""
    status_code = 403


class NotFoundError(MarketError):
    """Not found"""
    status_code = 404


class ConflictError(MarketError):
    """Conflicting state"""
    status_code = 409


class UpstreamError(MarketError):
    """Payment provider error"""
    status_code = 400


class GatewayTimeout(UpstreamError):
    """Payment provider did not answer in time"""


# Order placement
class EmptyCartError(ValidationError):
    """The order must contain at least one product"""


class ProductUnavailableError(ValidationError):
    pass


class InsufficientStockError(ValidationError):
    pass


class MixedSupplierError(ValidationError):
    """All products must come from the same supplier"""


# Order lifecycle
class InvalidTransitionError(ConflictError):
    pass


class NotCancellableError(InvalidTransitionError):
    # Historically answered with 400 by the mobile clients
    status_code = 400


class AlreadyPaidError(ConflictError):
    """This order can no longer be paid"""


async def market_error_handler(request: Request, exc: MarketError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def internal_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketError, market_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
