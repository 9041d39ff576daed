"""Request-scoped context threaded through guards and handlers.

A `RequestContext` is created by the dispatcher for each request and is
the only place where per-request state (the authenticated user id, the
active subscription, parsed input) lives.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from . import models
from .config import Settings
from .errors import ValidationFailure
from .tokens import TokenCodec

BEARER_RE = re.compile(r"^Bearer\s+(.*)$", re.IGNORECASE)

T = TypeVar("T", bound=BaseModel)


@dataclass
class RawRequest:
    """Transport-independent view of an inbound HTTP request."""
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    request_id: str = ""


@dataclass
class RequestContext:
    request: RawRequest
    session: Session
    settings: Settings
    codec: TokenCodec
    path: str = ""
    path_params: Dict[str, str] = field(default_factory=dict)
    user_id: Optional[int] = None
    claims: Optional[dict] = None
    subscription: Optional[models.Subscription] = None
    _body: Optional[dict] = field(default=None, repr=False)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.request.headers.get(name.lower(), default)

    def bearer_token(self) -> Optional[str]:
        value = self.header("authorization")
        if not value:
            return None
        m = BEARER_RE.match(value)
        return m.group(1).strip() if m else None

    @property
    def body(self) -> dict:
        """JSON body as a dict; anything else reads as empty."""
        if self._body is None:
            try:
                parsed = json.loads(self.request.body or b"null")
            except ValueError:
                parsed = None
            self._body = parsed if isinstance(parsed, dict) else {}
        return self._body

    def input(self, key: str, default: Any = None) -> Any:
        value = self.body.get(key)
        return default if value is None else value

    def query(self, key: str, default: Any = None) -> Any:
        return self.request.query.get(key, default)

    def pagination(self) -> Dict[str, int]:
        page = max(1, _to_int(self.query("page"), 1))
        per_page = _to_int(self.query("per_page"), self.settings.DEFAULT_PAGE_SIZE)
        per_page = min(self.settings.MAX_PAGE_SIZE, max(1, per_page))
        return {"page": page, "per_page": per_page, "offset": (page - 1) * per_page}

    def parse(self, schema: Type[T]) -> T:
        """Validate the JSON body against `schema`.

        Raises `ValidationFailure` with one message per offending field.
        """
        try:
            return schema.model_validate(self.body)
        except ValidationError as exc:
            raise ValidationFailure(errors=validation_errors(exc))

    def user(self) -> Optional[models.User]:
        if self.user_id is None:
            return None
        return self.session.get(models.User, self.user_id)


def validation_errors(exc: ValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        key = ".".join(loc) or "body"
        if key not in errors:
            label = (loc[-1] if loc else "body").replace("_", " ").capitalize()
            errors[key] = f"{label}: {err.get('msg', 'invalid value')}"
    return errors


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
