"""HTTP serving of exported metrics."""

from .app import create_app
from .bind import bind_with_retry, serve

__all__ = ["create_app", "bind_with_retry", "serve"]
