"""ASGI entrypoint: ``uvicorn assistline.apps.api.main:app``."""

from assistline.apps.api.app import create_app

app = create_app()
