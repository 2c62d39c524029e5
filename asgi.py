"""
asgi.py -- ASGI entry point for Gatehouse.

Run with:  uvicorn asgi:app --reload

The application itself is assembled in api/main.py. This module exists so
process managers have one stable import path regardless of how api/ is
organised.
"""

from api.main import app

__all__ = ["app"]
