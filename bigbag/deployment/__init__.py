"""
deployment/ - HTTP interface.
"""

from .api import create_fastapi_app, error_status

__all__ = ["create_fastapi_app", "error_status"]
