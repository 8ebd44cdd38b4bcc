import logging
from typing import Any, Dict, Optional

from aiohttp import web
import aiohttp_jinja2

from com.ancill.snipper.model.base import utc_now
from com.ancill.snipper.session.context import ANONYMOUS, AuthContext
from com.ancill.snipper.session.store import Session

logger = logging.getLogger(__name__)

SESSION_REQUEST_KEY = "snipper.session"
"""Request key holding the Session attached by the session stage"""

AUTH_CONTEXT_REQUEST_KEY = "snipper.auth_context"
"""Request key holding the AuthContext attached by the authenticate stage"""

FLASH_KEY = "flash"
REDIRECT_AFTER_LOGIN_KEY = "redirect_after_login"
CSRF_TOKEN_KEY = "csrf_token"


def request_session(request: web.Request) -> Session:
    return request[SESSION_REQUEST_KEY]


def request_auth(request: web.Request) -> AuthContext:
    return request.get(AUTH_CONTEXT_REQUEST_KEY, ANONYMOUS)


def template_data(request: web.Request, **extra: Any) -> Dict[str, Any]:
    """
    Create the context shared by every page template.

    Reading the data pops the flash message, so a flash is shown on exactly
    one rendered page.
    """
    session: Optional[Session] = request.get(SESSION_REQUEST_KEY)
    data: Dict[str, Any] = {
        "current_year": utc_now().year,
        "flash": session.pop(FLASH_KEY) if session is not None else None,
        "is_authenticated": request_auth(request).is_authenticated,
        "csrf_token": session.get(CSRF_TOKEN_KEY, "") if session is not None else "",
        "form": {},
        "field_errors": {},
        "non_field_errors": [],
    }
    data.update(extra)
    return data


async def render(
    request: web.Request,
    template: str,
    data: Dict[str, Any],
    status: int = 200,
) -> web.Response:
    """
    Render a page template.

    The body is rendered completely before the response is created, so a
    template error becomes a 500 from the recover stage rather than a half
    written page.
    """
    return await aiohttp_jinja2.render_template_async(
        template, request, context=data, status=status
    )


def see_other(location: str) -> web.HTTPSeeOther:
    return web.HTTPSeeOther(location)


def client_error(status: int, headers: Optional[Dict[str, str]] = None) -> web.Response:
    """Plain text response carrying only the standard reason phrase."""
    response = web.Response(status=status, headers=headers)
    response.text = response.reason
    return response


def not_found() -> web.Response:
    return client_error(404)


def server_error(status: int = 500) -> web.Response:
    return client_error(status, headers={"Connection": "close"})
