from aiohttp import web

from com.ancill.snipper.app.config import HealthGaugeAppKey


async def handle_ping(request: web.Request):
    return web.Response(text="OK")


async def handle_internal_ready(request: web.Request):
    health_gauge = request.app[HealthGaugeAppKey]
    if await health_gauge.is_healthy():
        return web.Response(status=200)
    return web.Response(status=503)


async def handle_internal_alive(request: web.Request):
    return web.Response(status=200)
