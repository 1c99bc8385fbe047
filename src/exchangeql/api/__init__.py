"""HTTP API."""

from exchangeql.api.server import build_default_app, create_app

__all__ = ["build_default_app", "create_app"]
