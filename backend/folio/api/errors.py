"""
Exception handlers mapping engine errors to HTTP responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from folio.core.errors import (
    DuplicateEntryError,
    FolioError,
    InsufficientHoldingsError,
    MissingPriceError,
    NotFoundError,
    ValidationError,
)

STATUS_BY_ERROR = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientHoldingsError: status.HTTP_409_CONFLICT,
    DuplicateEntryError: status.HTTP_409_CONFLICT,
    MissingPriceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: FolioError) -> int:
    for error_cls in type(exc).__mro__:
        if error_cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def folio_error_handler(request: Request, exc: FolioError) -> JSONResponse:
    body = exc.to_dict()
    if isinstance(exc, MissingPriceError):
        body["valued_symbols"] = [h.symbol for h in exc.partial]
    return JSONResponse(status_code=status_for(exc), content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FolioError, folio_error_handler)
