"""Mapping of domain error codes to HTTP responses"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from payops_gateway.domain.exceptions import DomainException

STATUS_BY_ERROR_CODE = {
    "NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "ROUTING_FAILURE": 200,
}


def error_status(error_code: Optional[str]) -> int:
    return STATUS_BY_ERROR_CODE.get(error_code or "", 422)


def error_body(error_code: str, message: str) -> dict:
    return {"success": False, "error_code": error_code, "message": message}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_error(request: Request, exc: DomainException):
        return JSONResponse(status_code=error_status(exc.error_code), content=error_body(exc.error_code, str(exc)))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logging.error(
            f"Unexpected error: {exc}",
            extra={"request_id": getattr(request.state, "request_id", "unknown")},
        )
        return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", "Internal server error"))
