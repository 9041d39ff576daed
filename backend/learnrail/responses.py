"""Uniform JSON envelopes returned by every endpoint."""

import math
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import ApiError


def json(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def success(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return json({"success": True, "message": message, "data": data}, status_code)


def created(data: Any = None, message: str = "Created successfully") -> JSONResponse:
    return success(data, message, 201)


def error(message: str, status_code: int = 400, errors: Optional[Dict[str, str]] = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    return json(body, status_code)


def from_error(exc: ApiError) -> JSONResponse:
    return error(exc.message, exc.status_code, exc.errors)


def paginated(data: Any, total: int, page: int, per_page: int) -> JSONResponse:
    """Return a list page with its `meta` block.

    `last_page` is at least 1 so that an empty result still reports a
    single (empty) page.
    """
    last_page = max(1, math.ceil(total / per_page))
    return json({
        "success": True,
        "data": data,
        "meta": {
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": last_page,
            "has_more": page < last_page,
        },
    })
