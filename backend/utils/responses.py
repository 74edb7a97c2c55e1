"""
Uniform JSON envelope {ok, data, error, message} for every API response
"""
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from backend.utils.errors import EntitlementError


def _envelope(ok: bool, status: int, message: str, data=None, error=None) -> JSONResponse:
    body = {
        "ok": ok,
        # Pydantic models, datetimes and Decimals all serialize here
        "data": {} if data is None else jsonable_encoder(data),
        "error": error,
        "message": message,
    }
    return JSONResponse(status_code=status, content=body)


def success_response(data=None, message="OK", status=200):
    return _envelope(True, status, message, data=data)


def error_response(error_code, status=400, message="An error occurred", data=None):
    return _envelope(False, status, message, data=data, error=error_code)


def error_from_exception(exc: EntitlementError) -> JSONResponse:
    """Render a domain error with its own code and HTTP status."""
    return error_response(exc.code, status=exc.status_code, message=exc.message)
