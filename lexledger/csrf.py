"""
LexLedger - CSRF Protection

Double-submit cookie: the ``csrf_token`` cookie must be echoed back on every
state-changing request, either in the ``X-CSRF-Token`` header (JSON clients)
or in a ``csrf_token`` form field (HTML forms, multipart uploads).

Raw ASGI middleware so the request body can be inspected and then replayed
to the handler unchanged.
"""

import secrets
from typing import Optional
from urllib.parse import parse_qs

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

CSRF_COOKIE_NAME = "csrf_token"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_TOKEN_LENGTH = 32

UNSAFE_METHODS = ("POST", "PUT", "DELETE", "PATCH")

CSRF_EXEMPT_PATHS = {"/health"}
CSRF_EXEMPT_PREFIXES = ("/docs", "/redoc", "/openapi")


def generate_csrf_token() -> str:
    """Generate a new CSRF token."""
    return secrets.token_urlsafe(CSRF_TOKEN_LENGTH)


def get_csrf_token(request: Request) -> str:
    """The CSRF token from the cookie, or a fresh one."""
    return request.cookies.get(CSRF_COOKIE_NAME) or generate_csrf_token()


def _forbidden(detail: str) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": detail})


class CSRFMiddleware:
    """Rejects unsafe requests whose submitted token does not match the cookie."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        path = request.url.path

        if path in CSRF_EXEMPT_PATHS or path.startswith(CSRF_EXEMPT_PREFIXES):
            await self.app(scope, receive, send)
            return

        if request.method not in UNSAFE_METHODS:
            await self.app(scope, receive, self._issue_cookie(request, send))
            return

        cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
        if not cookie_token:
            await _forbidden("CSRF token missing")(scope, receive, send)
            return

        submitted_token = request.headers.get(CSRF_HEADER_NAME)
        if submitted_token:
            if not secrets.compare_digest(cookie_token, submitted_token):
                await _forbidden("CSRF token mismatch")(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        # No header: look for the form field, then replay the body downstream
        body = await _read_body(receive)
        submitted_token = _token_from_body(body, request.headers.get("content-type", ""))

        if not submitted_token:
            await _forbidden("CSRF token not provided in form or header")(scope, receive, send)
            return
        if not secrets.compare_digest(cookie_token, submitted_token):
            await _forbidden("CSRF token mismatch")(scope, receive, send)
            return

        await self.app(scope, _replay(body), send)

    @staticmethod
    def _issue_cookie(request: Request, send: Send) -> Send:
        """Wrap ``send`` so safe requests without a cookie receive one."""
        if CSRF_COOKIE_NAME in request.cookies:
            return send

        async def send_with_cookie(message: Message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                cookie_value = f"{CSRF_COOKIE_NAME}={generate_csrf_token()}; Path=/; SameSite=Lax"
                headers.append((b"set-cookie", cookie_value.encode()))
                message = {**message, "headers": headers}
            await send(message)

        return send_with_cookie


async def _read_body(receive: Receive) -> bytes:
    body = b""
    while True:
        message = await receive()
        body += message.get("body", b"")
        if not message.get("more_body", False):
            return body


def _replay(body: bytes) -> Receive:
    sent = False

    async def replay_receive() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    return replay_receive


def _token_from_body(body: bytes, content_type: str) -> Optional[str]:
    if "application/x-www-form-urlencoded" in content_type:
        values = parse_qs(body.decode("utf-8", errors="replace")).get(CSRF_FORM_FIELD, [])
        return values[0] if values else None
    if "multipart/form-data" in content_type:
        return _extract_multipart_field(body, content_type, CSRF_FORM_FIELD)
    return None


def _extract_multipart_field(body: bytes, content_type: str, field_name: str) -> Optional[str]:
    """Pull one plain (non-file) field out of a multipart body."""
    boundary = None
    for part in content_type.split(";"):
        part = part.strip()
        if part.startswith("boundary="):
            boundary = part[len("boundary="):].strip('"')
            break
    if not boundary:
        return None

    for part in body.split(f"--{boundary}".encode()):
        header_end = part.find(b"\r\n\r\n")
        if header_end == -1:
            continue
        headers = part[:header_end].decode("utf-8", errors="replace")
        if f'name="{field_name}"' in headers and "filename=" not in headers:
            value = part[header_end + 4:].rstrip(b"\r\n-")
            return value.decode("utf-8", errors="replace").strip()
    return None
