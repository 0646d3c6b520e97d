"""
Error taxonomy for the InStock trip optimizer.

Every failure the service reports to a client is a BaseAppException carrying a
message and the HTTP status it maps to. Solvers raise these directly; the
FastAPI layer renders them through setup_exception_handlers().
"""

import logging
from typing import Dict, Iterable, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BaseAppException(Exception):
    """Base class for all app-specific exceptions."""
    retryable = False

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def details(self) -> Optional[Dict]:
        return None


class UnknownItem(BaseAppException):
    """One or more items were never registered in the inventory."""
    def __init__(self, items: Iterable[str]):
        self.items: List[str] = sorted(set(items))
        super().__init__(
            f"Unknown item(s): {', '.join(self.items)}",
            status.HTTP_404_NOT_FOUND,
        )

    def details(self) -> Dict:
        return {"items": self.items}


class UnknownStore(BaseAppException):
    """One or more store ids are not in the inventory."""
    def __init__(self, stores: Iterable[str]):
        self.stores: List[str] = sorted(set(stores))
        super().__init__(
            f"Unknown store(s): {', '.join(self.stores)}",
            status.HTTP_404_NOT_FOUND,
        )

    def details(self) -> Dict:
        return {"stores": self.stores}


class EmptyShoppingList(BaseAppException):
    """Shopping list has no items after normalization."""
    def __init__(self, message: str = "Shopping list is empty"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class EmptySelection(BaseAppException):
    """Route requested for zero stores."""
    def __init__(self, message: str = "No stores given to route"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidCoordinates(BaseAppException):
    """Latitude or longitude outside the valid range."""
    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            f"Invalid coordinates ({latitude}, {longitude})",
            status.HTTP_400_BAD_REQUEST,
        )


class PartialCoverage(BaseAppException):
    """
    Some shopping list items cannot be bought at any candidate store.

    Not fatal: endpoints report uncovered items alongside the selection. Only
    raised by CoverResult.raise_for_partial() for callers that need a full cover.
    """
    def __init__(self, uncovered: Iterable[str], unknown: Iterable[str] = ()):
        self.uncovered: List[str] = sorted(set(uncovered))
        self.unknown: List[str] = sorted(set(unknown))
        missing = self.uncovered + self.unknown
        super().__init__(
            f"Shopping list only partially covered, missing: {', '.join(missing)}",
            status.HTTP_200_OK,
        )

    def details(self) -> Dict:
        return {"uncovered": self.uncovered, "unknownItems": self.unknown}


class SolverTimeout(BaseAppException):
    """Route search exceeded its time budget."""
    retryable = True

    def __init__(self, message: str = "Route search exceeded its time budget"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class DuplicateItem(BaseAppException):
    """An item with the same normalized name already exists."""
    def __init__(self, name: str):
        super().__init__(f"Item '{name}' already exists", status.HTTP_409_CONFLICT)


class GeocodingUnavailable(BaseAppException):
    """Store has no coordinates and no geocoder is configured."""
    def __init__(self, message: str = "Store coordinates missing and geocoding is not configured"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class MapsServiceError(BaseAppException):
    """Google Maps failed or has no answer (e.g. no road between two stores)."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
        self.retryable = retryable


def error_response(message: str, status_code: int, details: Optional[Dict] = None,
                   retryable: bool = False) -> JSONResponse:
    content = {"success": False, "error": message, "details": details}
    if retryable:
        content["retryable"] = True
    return JSONResponse(content=content, status_code=status_code)


def setup_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BaseAppException)
    async def app_exception_handler(request: Request, exc: BaseAppException):
        logger.warning(f"{type(exc).__name__} at {request.url.path}: {exc.message}")
        return error_response(
            exc.message,
            status_code=exc.status_code,
            details=exc.details(),
            retryable=exc.retryable,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(f"HTTPException at {request.url.path}: {exc.detail}")
        return error_response(str(exc.detail), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error at {request.url.path}: {exc.errors()}")
        return JSONResponse(
            content={
                "success": False,
                "error": "Invalid or missing request fields",
                "details": jsonable_errors(exc),
            },
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled Exception at {request.url.path}: {exc}")
        return error_response("Something went wrong on the server", status_code=500)


def jsonable_errors(exc: RequestValidationError) -> List[Dict]:
    # pydantic may put exception objects under "ctx"
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in exc.errors()
    ]
