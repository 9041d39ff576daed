"""Request dispatch: route resolution, guards, handler invocation.

`Dispatcher.dispatch` is the single entry point for every API request.
It never raises: known failures (`ApiError`) become their error
envelope and anything else is logged and answered with a generic 500
after the session has been rolled back.
"""

import json
import logging
import time
from typing import Optional

from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import responses
from .config import Settings
from .context import RawRequest, RequestContext
from .errors import ApiError
from .routes import build_routes
from .routing import RouteTable
from .tokens import TokenCodec

logger = logging.getLogger("learnrail.api")


class Dispatcher:
    def __init__(self, settings: Settings, routes: Optional[RouteTable] = None,
                 codec: Optional[TokenCodec] = None):
        self.settings = settings
        self.routes = routes if routes is not None else build_routes()
        self.codec = codec or TokenCodec(settings.JWT_SECRET, settings.JWT_ALGORITHM)

    def strip_prefix(self, path: str) -> str:
        prefix = self.settings.MOUNT_PREFIX
        if prefix and (path == prefix or path.startswith(prefix + "/")):
            path = path[len(prefix):]
        if len(path) > 1:
            path = path.rstrip("/")
        return path or "/"

    def dispatch(self, raw: RawRequest, session: Session) -> Response:
        started = time.perf_counter()
        response = self._dispatch(raw, session)
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": raw.request_id,
                    "path": raw.path,
                    "method": raw.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        return response

    def _dispatch(self, raw: RawRequest, session: Session) -> Response:
        # preflight requests are answered before routing
        if raw.method.upper() == "OPTIONS":
            return Response(status_code=200)

        path = self.strip_prefix(raw.path)
        match = self.routes.resolve(raw.method, path)
        if match is None:
            return responses.error("Endpoint not found", 404)

        ctx = RequestContext(
            request=raw,
            session=session,
            settings=self.settings,
            codec=self.codec,
            path=path,
            path_params=match.path_params,
        )
        try:
            for guard in match.guards:
                outcome = guard(ctx)
                if not outcome.passed:
                    return outcome.response
            result = match.handler(ctx, **match.path_params)
        except ApiError as exc:
            session.rollback()
            return responses.from_error(exc)
        except Exception:
            session.rollback()
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {"request_id": raw.request_id, "path": raw.path, "method": raw.method,
                     "route": match.route.name},
                    ensure_ascii=True,
                ),
            )
            return responses.error("Internal server error", 500)
        if isinstance(result, Response):
            return result
        return JSONResponse(content=result)
