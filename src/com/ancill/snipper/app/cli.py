import os
from aiohttp import web
import logging
from logging.config import dictConfig
import json
import ssl
from typing import Optional


def configure_logging():
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(logging.DEBUG)


def ssl_context(cert_file: Optional[str], key_file: Optional[str]) -> Optional[ssl.SSLContext]:
    if not cert_file or not key_file:
        return None
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(cert_file, key_file)
    return context


def invoke():
    configure_logging()

    from com.ancill.snipper.app.config import Settings
    from com.ancill.snipper.app.server import start_web_server

    settings = Settings()  # type: ignore

    web.run_app(
        start_web_server(settings),
        host=settings.http_host,
        port=settings.http_port,
        ssl_context=ssl_context(settings.tls_cert_file, settings.tls_key_file),
        handler_cancellation=True,
        access_log=None,
    )


if __name__ == "__main__":
    invoke()
