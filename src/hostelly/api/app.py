"""ASGI entrypoint: `uvicorn hostelly.api.app:app`."""

from hostelly.api.factory import create_app

app = create_app()
