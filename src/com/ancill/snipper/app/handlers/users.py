"""
User Handlers

Signup, login and logout.

Login and logout are privilege changes: both move the session to a new token, so a token captured
before login can never be used as a logged-in session and a token held while logged in stops
working at logout.

Flow:
1. An anonymous visitor opens a protected page and is redirected to /user/login; the requested
   path is stored in the session
2. The login form posts email and password
3. On success the session token is renewed, the user id is stored and the visitor is sent back to
   the stored path (or /snippet/create)
"""

import logging

from aiohttp import web

from com.ancill.snipper.app.config import UserRepositoryAppKey
from com.ancill.snipper.app.forms import UserLoginForm, UserSignupForm, bind_form
from com.ancill.snipper.app.handlers.helpers import (
    FLASH_KEY,
    REDIRECT_AFTER_LOGIN_KEY,
    render,
    request_session,
    see_other,
    template_data,
)
from com.ancill.snipper.errors import DuplicateEmailError
from com.ancill.snipper.session.context import AUTHENTICATED_USER_ID_KEY

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_DESTINATION = "/snippet/create"


def is_local_path(path: object) -> bool:
    """Only same-site absolute paths are accepted as post-login destinations."""
    return (
        isinstance(path, str)
        and path.startswith("/")
        and not path.startswith("//")
        and "\\" not in path
    )


async def handle_user_signup(request: web.Request):
    return await render(request, "pages/signup.html", template_data(request))


async def handle_user_signup_submit(request: web.Request):
    data = await request.post()
    form, values, field_errors = bind_form(UserSignupForm, data)

    if form is not None:
        user_repository = request.app[UserRepositoryAppKey]
        try:
            await user_repository.insert(form.name, form.email, form.password)
        except DuplicateEmailError:
            field_errors = {"email": "Email address is already in use"}
        else:
            request_session(request).put(
                FLASH_KEY, "Your signup was successful. Please log in."
            )
            raise see_other("/user/login")

    values.pop("password", None)
    return await render(
        request,
        "pages/signup.html",
        template_data(request, form=values, field_errors=field_errors),
        status=422,
    )


async def handle_user_login(request: web.Request):
    return await render(request, "pages/login.html", template_data(request))


async def handle_user_login_submit(request: web.Request):
    data = await request.post()
    form, values, field_errors = bind_form(UserLoginForm, data)
    values.pop("password", None)

    if form is None:
        return await render(
            request,
            "pages/login.html",
            template_data(request, form=values, field_errors=field_errors),
            status=422,
        )

    user_repository = request.app[UserRepositoryAppKey]
    user_id = await user_repository.verify(form.email, form.password)
    if user_id is None:
        return await render(
            request,
            "pages/login.html",
            template_data(
                request,
                form=values,
                non_field_errors=["Email or password is incorrect"],
            ),
            status=422,
        )

    session = request_session(request)
    session.renew_token()
    session.put(AUTHENTICATED_USER_ID_KEY, user_id)
    logger.info("user %d logged in", user_id)

    destination = session.pop(REDIRECT_AFTER_LOGIN_KEY)
    if not is_local_path(destination):
        destination = DEFAULT_LOGIN_DESTINATION
    raise see_other(destination)


async def handle_user_logout(request: web.Request):
    session = request_session(request)
    session.destroy()
    session.put(FLASH_KEY, "You've been logged out successfully!")
    raise see_other("/")
