"""
FastAPI application entry point.

Run with ``uvicorn revcycle.main:app``. Environment, Sentry and logging are
initialized before the application is built.
"""
from revcycle.core.application import create_application
from revcycle.core.setup import setup_application

setup_application()

app = create_application()
