import logging

from aiohttp import web

from com.ancill.snipper.app.config import UserRepositoryAppKey
from com.ancill.snipper.app.forms import AccountPasswordUpdateForm, bind_form
from com.ancill.snipper.app.handlers.helpers import (
    FLASH_KEY,
    render,
    request_auth,
    request_session,
    see_other,
    template_data,
)
from com.ancill.snipper.errors import AuthError, NotFoundError

logger = logging.getLogger(__name__)


async def handle_account_view(request: web.Request):
    user_repository = request.app[UserRepositoryAppKey]
    try:
        user = await user_repository.get(request_auth(request).user_id)
    except NotFoundError:
        # Deleted between the authenticate stage and here.
        raise see_other("/user/login")

    return await render(request, "pages/account.html", template_data(request, user=user))


async def handle_account_password_update(request: web.Request):
    return await render(request, "pages/password.html", template_data(request))


async def handle_account_password_update_submit(request: web.Request):
    data = await request.post()
    form, _, field_errors = bind_form(AccountPasswordUpdateForm, data)

    if form is not None:
        user_repository = request.app[UserRepositoryAppKey]
        try:
            await user_repository.update_password(
                request_auth(request).user_id, form.current_password, form.new_password
            )
        except AuthError:
            field_errors = {"current_password": "Current password is incorrect"}
        else:
            request_session(request).put(FLASH_KEY, "Your password has been updated!")
            raise see_other("/account/view")

    return await render(
        request,
        "pages/password.html",
        template_data(request, field_errors=field_errors),
        status=422,
    )
