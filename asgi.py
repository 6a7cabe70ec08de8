"""
asgi.py -- Application assembly for SessionGate.

The API app is built in api/main.py; this module is the import target for
ASGI servers so deployment config never has to know the package layout.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8000 --workers 2
"""

from api.main import app

__all__ = ["app"]
