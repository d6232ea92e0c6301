"""HTTP API for wapair."""

from wapair.api.app import create_app

__all__ = ["create_app"]
