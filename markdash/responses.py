"""
Success and error envelopes.
"""

from __future__ import annotations

from typing import Any

from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data)},
    )


def created(data: Any) -> JSONResponse:
    return success(data, status_code=201)


def no_content() -> Response:
    return Response(status_code=204)


def error(message: str, status_code: int = 400, /, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )
