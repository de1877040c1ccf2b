"""Factory function for creating the Canvas HTTP client."""

import httpx

import config
from auth import CanvasCredentials
from utils.logger import get_logger

logger = get_logger()

def build_client(credentials: CanvasCredentials, timeout: float = config.HTTP_TIMEOUT) -> httpx.AsyncClient:
    """Builds an authenticated async HTTP client for one Canvas instance.

    Relative URLs resolve against the Canvas root; absolute URLs (attachment
    downloads) are used as they are. Redirects are followed because Canvas
    serves files through redirects to its file store.

    Args:
        credentials: Canvas URL and bearer token.
        timeout: Per-request timeout in seconds.

    Returns:
        httpx.AsyncClient: The client; the caller closes it.
    """
    logger.debug(f"Building Canvas client for {credentials.base_url} (timeout {timeout}s)")
    return httpx.AsyncClient(
        base_url=credentials.base_url,
        headers={**credentials.headers(), "Accept": "application/json"},
        timeout=timeout,
        follow_redirects=True,
    )
