"""
Exception handlers registered on the FastAPI app.

Amounts that fail request validation (a boolean, a string or a fraction)
are answered with the same AMOUNT_INVALID refusal the service raises for
non-positive figures, so clients see one code for every bad amount.
"""
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from negotiation_engine.logger import get_logger
from negotiation_engine.services.errors import AmountInvalid

logger = get_logger(__name__)

AMOUNT_FIELDS = ("amount", "initial_amount")


async def validation_error_handler(request: Request, exc: RequestValidationError):
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc and loc[0] == "body" and loc[-1] in AMOUNT_FIELDS and error.get("type") != "missing":
            refusal = AmountInvalid(error.get("input"))
            logger.warning("Refused %s %s: %s", request.method, request.url.path, refusal.message)
            return JSONResponse(
                status_code=422,
                content={"detail": {"code": refusal.code, "message": refusal.message}}
            )

    return await request_validation_exception_handler(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
