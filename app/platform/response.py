from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """
    Envelope shared by every endpoint.
    `ok` and `status` are derived from the status code (< 400 is a success).
    """
    ok = status_code < 400
    data = jsonable_encoder(data) if data is not None else {}

    return JSONResponse(
        status_code=status_code,
        content={
            "ok": ok,
            "status_code": status_code,
            "status": "success" if ok else "error",
            "message": message,
            "data": data,
        },
    )
