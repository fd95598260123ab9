import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

log = logging.getLogger(__name__)


class ShopError(Exception):
    """Base for failures scoped to a single request."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Unauthenticated(ShopError):
    status_code = 401


class Unauthorized(ShopError):
    status_code = 403


class InvalidRequest(ShopError):
    status_code = 400


class NotFound(ShopError):
    status_code = 404


class Conflict(ShopError):
    status_code = 409


class InvalidState(ShopError):
    status_code = 400


class InsufficientStock(ShopError):
    status_code = 400

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}: {available} available, {requested} requested"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


def _shop_error(request: Request, exc: ShopError):
    log.warning("%s %s rejected: %s", request.method, request.url.path, exc.detail)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content={"detail": detail})


def _store_error(request: Request, exc: SQLAlchemyError):
    log.exception("store failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Request failed, please retry"})


def install_handlers(app: FastAPI):
    app.add_exception_handler(ShopError, _shop_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(SQLAlchemyError, _store_error)
