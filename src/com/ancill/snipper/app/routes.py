"""
Route Table

The route table is static. ``build_router`` registers every route once at startup, and a second
registration of the same (method, path) is a RouteConflictError that stops the server from
starting.

Each route names the chain it runs behind:
- BARE: no session handling (liveness checks, static assets)
- DYNAMIC: session, CSRF and authentication context
- PROTECTED: DYNAMIC plus the requirement to be logged in

Routes:
- GET  /                         latest snippets
- GET  /snippet/view/{id}        one snippet
- GET  /about                    about page
- GET  /user/signup              signup form
- POST /user/signup              create account
- GET  /user/login               login form
- POST /user/login               authenticate
- POST /user/logout              log out (protected)
- GET  /snippet/create           snippet form (protected)
- POST /snippet/create           create snippet (protected)
- GET  /account/view             account details (protected)
- GET  /account/password/update  password form (protected)
- POST /account/password/update  change password (protected)
- GET  /ping                     liveness, literal OK
- GET  /internal/alive           liveness probe
- GET  /internal/ready           readiness probe
- GET  /static/*                 packaged assets
"""

from dataclasses import dataclass
import enum
import logging
from typing import Dict, List, Tuple

from aiohttp import web

from com.ancill.snipper.app.handlers.account import (
    handle_account_password_update,
    handle_account_password_update_submit,
    handle_account_view,
)
from com.ancill.snipper.app.handlers.helpers import client_error, not_found
from com.ancill.snipper.app.handlers.internal import (
    handle_internal_alive,
    handle_internal_ready,
    handle_ping,
)
from com.ancill.snipper.app.handlers.snippets import (
    handle_about,
    handle_home,
    handle_snippet_create,
    handle_snippet_create_submit,
    handle_snippet_view,
)
from com.ancill.snipper.app.handlers.users import (
    handle_user_login,
    handle_user_login_submit,
    handle_user_logout,
    handle_user_signup,
    handle_user_signup_submit,
)
from com.ancill.snipper.app.middleware import DYNAMIC, PROTECTED, Chain, Handler

logger = logging.getLogger(__name__)


class RouteKind(enum.Enum):
    BARE = "bare"
    DYNAMIC = "dynamic"
    PROTECTED = "protected"


CHAINS: Dict[RouteKind, Chain] = {
    RouteKind.BARE: Chain(),
    RouteKind.DYNAMIC: DYNAMIC,
    RouteKind.PROTECTED: PROTECTED,
}


class RouteConflictError(Exception):
    """A (method, path) pair was registered twice."""


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    handler: Handler
    kind: RouteKind


class Router:
    """
    Validated mapping of (method, path) to handler and chain.

    Routes are collected with ``add`` and registered on an application with
    ``install``. The router is not modified after installation.
    """

    def __init__(self) -> None:
        self._routes: Dict[Tuple[str, str], Route] = {}

    def add(self, method: str, path: str, handler: Handler, kind: RouteKind) -> None:
        key = (method.upper(), path)
        if key in self._routes:
            raise RouteConflictError(f"route {method.upper()} {path} registered twice")
        self._routes[key] = Route(method.upper(), path, handler, kind)

    def get(self, path: str, handler: Handler, kind: RouteKind) -> None:
        self.add("GET", path, handler, kind)

    def post(self, path: str, handler: Handler, kind: RouteKind) -> None:
        self.add("POST", path, handler, kind)

    @property
    def routes(self) -> List[Route]:
        return list(self._routes.values())

    def install(self, app: web.Application) -> None:
        for route in self._routes.values():
            app.router.add_route(
                route.method, route.path, CHAINS[route.kind].then(route.handler)
            )


def build_router() -> Router:
    router = Router()

    router.get("/ping", handle_ping, RouteKind.BARE)
    router.get("/internal/alive", handle_internal_alive, RouteKind.BARE)
    router.get("/internal/ready", handle_internal_ready, RouteKind.BARE)

    router.get("/", handle_home, RouteKind.DYNAMIC)
    router.get("/snippet/view/{id}", handle_snippet_view, RouteKind.DYNAMIC)
    router.get("/about", handle_about, RouteKind.DYNAMIC)
    router.get("/user/signup", handle_user_signup, RouteKind.DYNAMIC)
    router.post("/user/signup", handle_user_signup_submit, RouteKind.DYNAMIC)
    router.get("/user/login", handle_user_login, RouteKind.DYNAMIC)
    router.post("/user/login", handle_user_login_submit, RouteKind.DYNAMIC)

    router.get("/snippet/create", handle_snippet_create, RouteKind.PROTECTED)
    router.post("/snippet/create", handle_snippet_create_submit, RouteKind.PROTECTED)
    router.post("/user/logout", handle_user_logout, RouteKind.PROTECTED)
    router.get("/account/view", handle_account_view, RouteKind.PROTECTED)
    router.get(
        "/account/password/update", handle_account_password_update, RouteKind.PROTECTED
    )
    router.post(
        "/account/password/update",
        handle_account_password_update_submit,
        RouteKind.PROTECTED,
    )

    return router


@web.middleware
async def unmatched(request: web.Request, handler: Handler) -> web.StreamResponse:
    """
    Uniform responses for requests no route accepts.

    Installed as the innermost application middleware so it also covers
    static files that do not exist.
    """
    match_error = request.match_info.http_exception
    if isinstance(match_error, web.HTTPMethodNotAllowed):
        return client_error(
            405, headers={"Allow": ", ".join(sorted(match_error.allowed_methods))}
        )
    if match_error is not None:
        return not_found()

    try:
        response = await handler(request)
    except web.HTTPNotFound:
        return not_found()
    # The static handler returns an empty 404 for missing files on newer aiohttp.
    if response.status == 404 and not response.prepared:
        return not_found()
    return response
