"""Per-request access guards.

A guard inspects the `RequestContext` before the handler runs and
returns a `GuardOutcome`. A rejected outcome carries the finished error
response; the dispatcher returns it as-is and nothing else runs.

- `authenticated`: valid, unexpired access token in the Authorization
  header. Refresh tokens are refused. Binds `ctx.user_id`.
- `admin`: authenticated and the user's role is `admin`.
- `subscribed`: authenticated and an active, unexpired subscription
  exists. Binds `ctx.subscription`.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi.responses import JSONResponse

from . import repositories, responses
from .context import RequestContext
from .errors import ApiError, Forbidden, Unauthenticated
from .tokens import InvalidToken, is_refresh


@dataclass(frozen=True)
class GuardOutcome:
    passed: bool
    response: Optional[JSONResponse] = None

    @classmethod
    def ok(cls) -> "GuardOutcome":
        return cls(passed=True)

    @classmethod
    def reject(cls, exc: ApiError) -> "GuardOutcome":
        return cls(passed=False, response=responses.from_error(exc))


Guard = Callable[[RequestContext], GuardOutcome]


def authenticated(ctx: RequestContext) -> GuardOutcome:
    token = ctx.bearer_token()
    if not token:
        return GuardOutcome.reject(Unauthenticated("No token provided"))
    try:
        claims = ctx.codec.verify(token)
    except InvalidToken:
        return GuardOutcome.reject(Unauthenticated("Invalid or expired token"))
    user_id = claims.get("user_id")
    if is_refresh(claims) or not isinstance(user_id, int):
        return GuardOutcome.reject(Unauthenticated("Invalid or expired token"))
    ctx.user_id = user_id
    ctx.claims = claims
    return GuardOutcome.ok()


def admin(ctx: RequestContext) -> GuardOutcome:
    outcome = authenticated(ctx)
    if not outcome.passed:
        return outcome
    # role is read from the store, never from the token
    user = repositories.UserRepository(ctx.session).get(ctx.user_id)
    if not user or user.role != "admin":
        return GuardOutcome.reject(Forbidden("Admin access required"))
    return GuardOutcome.ok()


def subscribed(ctx: RequestContext) -> GuardOutcome:
    outcome = authenticated(ctx)
    if not outcome.passed:
        return outcome
    subscription = repositories.SubscriptionRepository(ctx.session).active_for_user(ctx.user_id)
    if not subscription:
        return GuardOutcome.reject(Forbidden("Active subscription required"))
    ctx.subscription = subscription
    return GuardOutcome.ok()


GUARDS: Dict[str, Guard] = {
    "auth": authenticated,
    "admin": admin,
    "subscribed": subscribed,
}
