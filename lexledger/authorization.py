"""
LexLedger - Route Authorization

Every request path is matched against ``ROUTE_REQUIREMENTS``. The most
specific (longest) matching pattern decides who may call it; paths that
match nothing require a staff session.

Raw ASGI middleware, like the CSRF and rate-limit layers. The verified
principal is stored in ``scope["state"]["principal"]`` for handlers and the
audit context.
"""

import re
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from lexledger.auth import (
    PORTAL_COOKIE_NAME,
    SESSION_COOKIE_NAME,
    Principal,
    client_principal_from_token,
    staff_principal_from_token,
)
from lexledger.models.user import UserRole


@dataclass(frozen=True)
class Requirement:
    """Who may call a route: nobody in particular, portal clients, or staff roles."""

    public: bool = False
    portal: bool = False
    roles: tuple = ()

    def allows(self, principal: Optional[Principal]) -> bool:
        if self.public:
            return True
        if principal is None:
            return False
        if self.portal:
            return principal.is_client
        if principal.is_client:
            return False
        return principal.role in self.roles


PUBLIC = Requirement(public=True)
PORTAL_CLIENT = Requirement(portal=True)
ANY_STAFF = Requirement(roles=UserRole.ALL)
PARTNER_OR_ADMIN = Requirement(roles=(UserRole.ADMIN, UserRole.PARTNER))
ADMIN_ONLY = Requirement(roles=(UserRole.ADMIN,))


@dataclass(frozen=True)
class RouteRule:
    pattern: str
    requirement: Requirement
    methods: Optional[frozenset] = None

    def compile(self) -> re.Pattern:
        # "{id}" matches one path segment; a rule also covers everything below it
        body = re.sub(r"\\\{[^/]+?\\\}", "[^/]+", re.escape(self.pattern.rstrip("/")))
        return re.compile(f"^{body}(/.*)?$")


ROUTE_REQUIREMENTS: list[RouteRule] = [
    # Public
    RouteRule("/health", PUBLIC),
    RouteRule("/docs", PUBLIC),
    RouteRule("/redoc", PUBLIC),
    RouteRule("/openapi.json", PUBLIC),
    RouteRule("/login", PUBLIC),
    RouteRule("/logout", PUBLIC),
    RouteRule("/forgot-password", PUBLIC),
    RouteRule("/reset-password", PUBLIC),

    # Client portal
    RouteRule("/portal", PORTAL_CLIENT),
    RouteRule("/portal/login", PUBLIC),

    # Administration
    RouteRule("/settings/audit-logs", ADMIN_ONLY),
    RouteRule("/settings/users", ADMIN_ONLY),
    RouteRule("/reminders/dispatch", ADMIN_ONLY),

    # Destructive operations on client records and invoices
    RouteRule("/clients/{id}/delete", PARTNER_OR_ADMIN, frozenset({"POST"})),
    RouteRule("/matters/{id}/delete", PARTNER_OR_ADMIN, frozenset({"POST"})),
    RouteRule("/billing/invoices/{id}/delete", PARTNER_OR_ADMIN, frozenset({"POST"})),
]

_COMPILED = [(rule, rule.compile()) for rule in ROUTE_REQUIREMENTS]


def requirement_for(path: str, method: str = "GET") -> Requirement:
    """Most specific requirement for a path; staff-only when nothing matches."""
    best: Optional[RouteRule] = None
    for rule, regex in _COMPILED:
        if rule.methods is not None and method not in rule.methods:
            continue
        if not regex.match(path):
            continue
        if best is None or len(rule.pattern) > len(best.pattern):
            best = rule
    return best.requirement if best else ANY_STAFF


class AuthorizationMiddleware:
    """
    Enforces the route requirement table before any handler runs.

    Answers 401 when no valid session is present and 403 when the session's
    role (or kind) is not allowed.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        requirement = requirement_for(request.url.path, request.method)

        if requirement.portal:
            principal = client_principal_from_token(request.cookies.get(PORTAL_COOKIE_NAME))
        else:
            principal = staff_principal_from_token(request.cookies.get(SESSION_COOKIE_NAME))

        state = scope.setdefault("state", {})
        state["principal"] = principal
        state["requirement"] = requirement

        if not requirement.allows(principal):
            if principal is None:
                response = JSONResponse(status_code=401, content={"detail": "Authentication required"})
            else:
                response = JSONResponse(
                    status_code=403,
                    content={"detail": "You do not have permission to perform this action"},
                )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
