"""
Snippet Handlers

- GET  /                    home page listing the latest snippets
- GET  /snippet/view/{id}   a single snippet, 404 when unknown or expired
- GET  /about               about page
- GET  /snippet/create      snippet form (protected)
- POST /snippet/create      create a snippet and redirect to it (protected)
"""

import logging

from aiohttp import web

from com.ancill.snipper.app.config import SettingsAppKey, SnippetRepositoryAppKey
from com.ancill.snipper.app.forms import SnippetCreateForm, bind_form
from com.ancill.snipper.app.handlers.helpers import (
    FLASH_KEY,
    not_found,
    render,
    request_session,
    see_other,
    template_data,
)
from com.ancill.snipper.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def handle_home(request: web.Request):
    settings = request.app[SettingsAppKey]
    snippet_repository = request.app[SnippetRepositoryAppKey]

    snippets = await snippet_repository.latest(settings.latest_snippets_limit)
    return await render(
        request, "pages/home.html", template_data(request, snippets=snippets)
    )


async def handle_snippet_view(request: web.Request):
    raw_id = request.match_info["id"]
    if not (raw_id.isascii() and raw_id.isdigit()) or int(raw_id) < 1:
        return not_found()

    snippet_repository = request.app[SnippetRepositoryAppKey]
    try:
        snippet = await snippet_repository.get(int(raw_id))
    except NotFoundError:
        return not_found()

    return await render(
        request, "pages/view.html", template_data(request, snippet=snippet)
    )


async def handle_about(request: web.Request):
    return await render(request, "pages/about.html", template_data(request))


async def handle_snippet_create(request: web.Request):
    return await render(
        request,
        "pages/create.html",
        template_data(request, form={"expires": 365}),
    )


async def handle_snippet_create_submit(request: web.Request):
    """
    Handle the snippet form submission.

    An invalid form is rendered again with its errors and status 422. A
    created snippet redirects to its page with a flash message, so reloading
    the result page does not submit the form again.
    """
    data = await request.post()
    form, values, field_errors = bind_form(SnippetCreateForm, data)

    if form is not None:
        snippet_repository = request.app[SnippetRepositoryAppKey]
        try:
            snippet_id = await snippet_repository.insert(
                form.title, form.content, form.expires
            )
        except ValidationError as e:
            field_errors = e.field_errors
        else:
            request_session(request).put(FLASH_KEY, "Snippet successfully created!")
            raise see_other(f"/snippet/view/{snippet_id}")

    return await render(
        request,
        "pages/create.html",
        template_data(request, form=values, field_errors=field_errors),
        status=422,
    )
