"""HTTP surface for sheetmirror.

Receives connect requests, Drive push notifications and refresh requests
using FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
