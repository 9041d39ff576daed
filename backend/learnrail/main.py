"""FastAPI application entrypoint.

All API traffic goes through one catch-all endpoint that hands the
request to the `Dispatcher`; routing, guards and error envelopes live
there rather than in FastAPI's own router so that route order and
matching stay under our control.
"""

import logging
import os
import time
import uuid

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from .config import settings
from .context import RawRequest
from .database import create_db_and_tables, get_session
from .dispatcher import Dispatcher

app = FastAPI(title="Learnrail API")
logger = logging.getLogger("learnrail.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

dispatcher = Dispatcher(settings)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    logger.debug("request_timing id=%s duration_ms=%s", req_id,
                 round((time.perf_counter() - started) * 1000.0, 2))
    return response


@app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def dispatch(full_path: str, request: Request, session: Session = Depends(get_session)) -> Response:
    raw = RawRequest(
        method=request.method,
        path=request.url.path,
        headers={k.lower(): v for k, v in request.headers.items()},
        query=dict(request.query_params),
        body=await request.body(),
        request_id=getattr(request.state, "request_id", ""),
    )
    return await run_in_threadpool(dispatcher.dispatch, raw, session)
