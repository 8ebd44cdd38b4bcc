"""
Request Middleware Chain

Every stage is an aiohttp middleware coroutine ``stage(request, handler)`` that either writes a
response itself or delegates to ``handler``. Stages are composed into explicit, ordered Chain
objects once at startup.

Chains:
- STANDARD: recover -> access_log -> secure_headers. Installed as application middlewares, so it
  wraps every request including static files and unmatched paths.
- DYNAMIC: session_load_save -> csrf_protect -> authenticate. Wrapped around page handlers.
- PROTECTED: DYNAMIC followed by require_authentication. Wrapped around handlers that need a
  logged-in user.

The recover stage is the only place that turns an unexpected exception into a response and the
only place that logs its full detail. Handlers raise aiohttp HTTP exceptions for redirects; those
pass through recover untouched.
"""

import logging
import secrets
from time import time
from typing import Awaitable, Callable, Tuple

from aiohttp import web
import sentry_sdk

from com.ancill.snipper.app.config import (
    HealthGaugeAppKey,
    MetricsClientAppKey,
    SessionManagerAppKey,
    UserRepositoryAppKey,
)
from com.ancill.snipper.app.handlers.helpers import (
    AUTH_CONTEXT_REQUEST_KEY,
    CSRF_TOKEN_KEY,
    FLASH_KEY,
    REDIRECT_AFTER_LOGIN_KEY,
    SESSION_REQUEST_KEY,
    client_error,
    request_auth,
    request_session,
    see_other,
    server_error,
)
from com.ancill.snipper.errors import AuthError, StoreError
from com.ancill.snipper.session.context import resolve_auth_context

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]
Stage = Callable[[web.Request, Handler], Awaitable[web.StreamResponse]]

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
LOGIN_PATH = "/user/login"

SECURE_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; style-src 'self' fonts.googleapis.com; font-src fonts.gstatic.com",
    "Referrer-Policy": "origin-when-cross-origin",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "deny",
    "X-XSS-Protection": "0",
}


class Chain:
    """
    An ordered, immutable list of stages.

    ``Chain(a, b).then(h)`` handles a request as ``a`` around ``b`` around
    ``h``. ``append`` returns a new chain and leaves this one unchanged.
    """

    def __init__(self, *stages: Stage) -> None:
        self.stages: Tuple[Stage, ...] = tuple(stages)

    def append(self, *stages: Stage) -> "Chain":
        return Chain(*self.stages, *stages)

    def then(self, handler: Handler) -> Handler:
        wrapped = handler
        for stage in reversed(self.stages):
            wrapped = _bind(stage, wrapped)
        return wrapped


def _bind(stage: Stage, next_handler: Handler) -> Handler:
    async def bound(request: web.Request) -> web.StreamResponse:
        return await stage(request, next_handler)

    return bound


def failure_status(e: Exception) -> int:
    """The status recover answers an unexpected exception with."""
    return 503 if isinstance(e, StoreError) and e.transient else 500


@web.middleware
async def recover(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Convert any unexpected exception into a generic 500 (or 503) response."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        status = failure_status(e)
        logger.exception(
            "recovered from %s serving %s %s", type(e).__name__, request.method, request.path_qs
        )
        sentry_sdk.capture_exception(e)
        await request.app[HealthGaugeAppKey].record_failure()
        request.app[MetricsClientAppKey].increment(
            "snipper.server.request.exception",
            1,
            tag_dict={"exception": type(e).__name__, "method": request.method},
        )
        # The exception skipped secure_headers on its way out.
        response = server_error(status)
        response.headers.update(SECURE_HEADERS)
        return response


@web.middleware
async def access_log(request: web.Request, handler: Handler) -> web.StreamResponse:
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method

    logger.info(
        "%s - %s %s %s",
        request.remote,
        f"HTTP/{request.version.major}.{request.version.minor}",
        request_method,
        request.path_qs,
    )

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise
    except Exception as e:
        response_status_code = failure_status(e)
        raise
    finally:
        metrics_client.timer(
            "snipper.server.request.time",
            time() - start_time,
            tag_dict={"method": request_method},
        )
        metrics_client.increment(
            "snipper.server.request.count",
            1,
            tag_dict={"method": request_method, "status": response_status_code},
        )


@web.middleware
async def secure_headers(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(SECURE_HEADERS)
        raise
    if not response.prepared:
        response.headers.update(SECURE_HEADERS)
    return response


async def session_load_save(request: web.Request, handler: Handler) -> web.StreamResponse:
    """
    Attach the session before the handler and commit it afterwards.

    The commit runs on every exit path, including redirects raised by the
    handler and unexpected exceptions on their way to the recover stage.
    """
    session_manager = request.app[SessionManagerAppKey]
    session = await session_manager.load(request)
    request[SESSION_REQUEST_KEY] = session

    response = None
    try:
        response = await handler(request)
        return response
    except web.HTTPException as e:
        response = e
        raise
    finally:
        await session_manager.commit(session, response)


async def csrf_protect(request: web.Request, handler: Handler) -> web.StreamResponse:
    """
    Require the session's anti-forgery token on state-changing requests.

    The token is created on first use so that pages rendered by safe requests
    can embed it in their forms.
    """
    session = request_session(request)
    token = session.get(CSRF_TOKEN_KEY)
    if token is None:
        token = secrets.token_urlsafe(32)
        session.put(CSRF_TOKEN_KEY, token)

    if request.method not in SAFE_METHODS:
        submitted = request.headers.get(CSRF_HEADER)
        if submitted is None:
            form = await request.post()
            submitted = form.get(CSRF_FORM_FIELD)
        if not isinstance(submitted, str) or not secrets.compare_digest(
            submitted.encode("utf-8"), token.encode("utf-8")
        ):
            logger.warning(
                "%s: %s %s", AuthError.csrf_mismatch(), request.method, request.path
            )
            return client_error(400)

    return await handler(request)


async def authenticate(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Resolve the AuthContext for the request. Never rejects."""
    request[AUTH_CONTEXT_REQUEST_KEY] = await resolve_auth_context(
        request_session(request), request.app[UserRepositoryAppKey]
    )
    return await handler(request)


async def require_authentication(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """
    Redirect anonymous users to the login page.

    For GET requests the requested path is remembered so the login handler
    can send the user back to it.
    """
    if not request_auth(request).is_authenticated:
        session = request_session(request)
        if request.method == "GET":
            session.put(REDIRECT_AFTER_LOGIN_KEY, request.path_qs)
        session.put(FLASH_KEY, "Please log in first.")
        raise see_other(LOGIN_PATH)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers["Cache-Control"] = "no-store"
        raise
    if not response.prepared:
        response.headers["Cache-Control"] = "no-store"
    return response


STANDARD = Chain(recover, access_log, secure_headers)
DYNAMIC = Chain(session_load_save, csrf_protect, authenticate)
PROTECTED = DYNAMIC.append(require_authentication)
