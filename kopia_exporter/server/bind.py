"""Listener setup with exponential backoff on bind failures."""

import logging
import socket
import time
from typing import Callable, TypeVar

from werkzeug.serving import make_server

from ..config.config_validator import parse_bind_address
from ..core.errors import BindError

T = TypeVar('T')

logger = logging.getLogger(__name__)


def bind_with_retry(bind_fn: Callable[[], T], address: str, max_retries: int = 5,
                    initial_delay: float = 1.0, sleep: Callable[[float], None] = time.sleep) -> T:
    """Call ``bind_fn`` until it succeeds, doubling the delay between attempts.

    Args:
        bind_fn: Binds the listener; raises OSError on failure.
        address: Address being bound, for messages.
        max_retries: Retries after the first attempt. Zero fails immediately.
        initial_delay: Delay before the first retry, in seconds.
        sleep: Sleep function.

    Raises:
        BindError: If every attempt failed.
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return bind_fn()
        except OSError as e:
            if attempt >= max_retries:
                raise BindError(f"Failed to bind to {address} after {attempt + 1} attempts: {e}") from e
            attempt += 1
            logger.warning(f"Bind to {address} failed ({e}), retry {attempt}/{max_retries} in {delay:g}s")
            sleep(delay)
            delay *= 2


def open_listener(address: str) -> socket.socket:
    """Bind and listen on a ``host:port`` address."""
    host, port = parse_bind_address(address)
    family = socket.AF_INET6 if ':' in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


def serve(app, address: str, max_retries: int = 5) -> None:
    """Serve ``app`` on ``address`` with one thread per request until interrupted.

    Raises:
        BindError: If the address could not be bound.
    """
    listener = bind_with_retry(lambda: open_listener(address), address, max_retries)
    host, port = listener.getsockname()[:2]
    server = make_server(host, port, app, threaded=True, fd=listener.fileno())
    logger.info(f"Listening on http://{address}/metrics")
    try:
        server.serve_forever()
    finally:
        server.server_close()
        listener.close()
