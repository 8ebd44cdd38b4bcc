from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer
import pytest

from com.ancill.snipper.app.routes import (
    RouteConflictError,
    RouteKind,
    Router,
    build_router,
    unmatched,
)


async def handle_nothing(request):
    return web.Response()


class TestRouter:
    def test_duplicate_route_rejected(self):
        """Registering the same method and path twice is an error."""
        router = Router()
        router.get("/about", handle_nothing, RouteKind.DYNAMIC)

        with pytest.raises(RouteConflictError):
            router.get("/about", handle_nothing, RouteKind.BARE)

    def test_same_path_different_method(self):
        router = Router()
        router.get("/user/login", handle_nothing, RouteKind.DYNAMIC)
        router.post("/user/login", handle_nothing, RouteKind.DYNAMIC)
        assert len(router.routes) == 2

    def test_route_table(self):
        """Every page is registered behind the expected chain."""
        table = {(r.method, r.path): r.kind for r in build_router().routes}

        assert table == {
            ("GET", "/ping"): RouteKind.BARE,
            ("GET", "/internal/alive"): RouteKind.BARE,
            ("GET", "/internal/ready"): RouteKind.BARE,
            ("GET", "/"): RouteKind.DYNAMIC,
            ("GET", "/snippet/view/{id}"): RouteKind.DYNAMIC,
            ("GET", "/about"): RouteKind.DYNAMIC,
            ("GET", "/user/signup"): RouteKind.DYNAMIC,
            ("POST", "/user/signup"): RouteKind.DYNAMIC,
            ("GET", "/user/login"): RouteKind.DYNAMIC,
            ("POST", "/user/login"): RouteKind.DYNAMIC,
            ("GET", "/snippet/create"): RouteKind.PROTECTED,
            ("POST", "/snippet/create"): RouteKind.PROTECTED,
            ("POST", "/user/logout"): RouteKind.PROTECTED,
            ("GET", "/account/view"): RouteKind.PROTECTED,
            ("GET", "/account/password/update"): RouteKind.PROTECTED,
            ("POST", "/account/password/update"): RouteKind.PROTECTED,
        }


class TestUnmatched:
    async def test_unknown_path(self, client):
        response = await client.get("/no/such/page")
        assert response.status == 404
        assert await response.text() == "Not Found"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    async def test_wrong_method(self, client):
        """A known path with an unsupported method is 405 with the allowed methods."""
        response = await client.delete("/about")
        assert response.status == 405
        assert "GET" in response.headers["Allow"]

    async def test_get_on_post_only_route(self, client):
        response = await client.get("/user/logout")
        assert response.status == 405
        assert response.headers["Allow"] == "POST"

    async def test_missing_static_file(self, client):
        response = await client.get("/static/css/missing.css")
        assert response.status == 404
        assert await response.text() == "Not Found"

    async def test_returned_404_is_uniform(self):
        """A handler returning its own empty 404 gets the standard body."""

        async def handle_missing(request):
            return web.Response(status=404)

        app = web.Application(middlewares=[unmatched])
        app.router.add_get("/missing", handle_missing)

        async with TestClient(TestServer(app)) as client:
            response = await client.get("/missing")
            assert response.status == 404
            assert await response.text() == "Not Found"

    async def test_static_file(self, client):
        response = await client.get("/static/css/main.css")
        assert response.status == 200
        assert "body" in await response.text()


class TestInternal:
    async def test_ping(self, client):
        """Ping answers OK without creating a session."""
        response = await client.get("/ping")
        assert response.status == 200
        assert await response.text() == "OK"
        assert "Set-Cookie" not in response.headers

    async def test_alive_and_ready(self, client):
        assert (await client.get("/internal/alive")).status == 200
        assert (await client.get("/internal/ready")).status == 200
