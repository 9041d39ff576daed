"""Route table with path-pattern matching.

Routes are matched by a linear scan in registration order and the first
route whose method and pattern match wins. There is no "most specific
route" rule, so registration order decides between overlapping
patterns: register literal routes before parameterized ones that could
shadow them.

Patterns are plain paths where `{name}` segments capture any run of
non-slash characters, e.g. `/api/goals/{goalId}/milestones`.
"""

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

PARAM_RE = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a route pattern into an anchored regular expression."""
    parts = []
    pos = 0
    for m in PARAM_RE.finditer(pattern):
        parts.append(re.escape(pattern[pos:m.start()]))
        parts.append(f"(?P<{m.group(1)}>[^/]+)")
        pos = m.end()
    parts.append(re.escape(pattern[pos:]))
    return re.compile("^" + "".join(parts) + "$")


@dataclass(frozen=True)
class Route:
    method: str
    pattern: str
    handler: Callable
    guards: Tuple[Callable, ...] = ()
    regex: re.Pattern = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return f"{self.method} {self.pattern}"


@dataclass(frozen=True)
class RouteMatch:
    route: Route
    path_params: Dict[str, str]

    @property
    def handler(self) -> Callable:
        return self.route.handler

    @property
    def guards(self) -> Tuple[Callable, ...]:
        return self.route.guards


class RouteTable:
    """Ordered registry of routes."""

    def __init__(self):
        self.routes: List[Route] = []
        self._prefix = ""
        self._group_guards: Tuple[Callable, ...] = ()

    def register(self, method: str, pattern: str, handler: Callable, guards: Sequence[Callable] = ()) -> Route:
        """Append a route; active `group` prefix and guards are applied."""
        full = self._prefix + pattern
        route = Route(
            method=method.upper(),
            pattern=full,
            handler=handler,
            guards=self._group_guards + tuple(guards),
            regex=compile_pattern(full),
        )
        self.routes.append(route)
        return route

    def get(self, pattern, handler, guards=()):
        return self.register("GET", pattern, handler, guards)

    def post(self, pattern, handler, guards=()):
        return self.register("POST", pattern, handler, guards)

    def put(self, pattern, handler, guards=()):
        return self.register("PUT", pattern, handler, guards)

    def patch(self, pattern, handler, guards=()):
        return self.register("PATCH", pattern, handler, guards)

    def delete(self, pattern, handler, guards=()):
        return self.register("DELETE", pattern, handler, guards)

    @contextmanager
    def group(self, prefix: str = "", guards: Sequence[Callable] = ()):
        """Register the routes inside the block under a shared prefix and guards."""
        previous = (self._prefix, self._group_guards)
        self._prefix += prefix
        self._group_guards = self._group_guards + tuple(guards)
        try:
            yield self
        finally:
            self._prefix, self._group_guards = previous

    def resolve(self, method: str, path: str) -> Optional[RouteMatch]:
        """Return the first route matching `method` and `path`, or None."""
        method = method.upper()
        for route in self.routes:
            if route.method != method:
                continue
            m = route.regex.match(path)
            if m:
                return RouteMatch(route=route, path_params=dict(m.groupdict()))
        return None

    def __len__(self):
        return len(self.routes)
