"""HTTP API for Mosaic."""

from mosaic.api.main import create_app

__all__ = ["create_app"]
