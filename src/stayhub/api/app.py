"""ASGI entry point: `uvicorn stayhub.api.app:app`."""

from stayhub.api.factory import create_app

app = create_app()
