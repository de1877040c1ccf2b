"""Resolves the Canvas API credentials used for every request."""

from dataclasses import dataclass
from typing import Dict, Optional

from utils.logger import get_logger
from utils.error_handler import AuthenticationError, ConfigError

logger = get_logger()


@dataclass(frozen=True)
class CanvasCredentials:
    base_url: str
    token: str

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def get_credentials(base_url: str, token: Optional[str]) -> CanvasCredentials:
    """Validates the Canvas URL and access token.

    Args:
        base_url: Root URL of the Canvas instance, e.g. https://canvas.example.edu
        token: Personal access token from the --token option or CANVAS_TOKEN.

    Returns:
        CanvasCredentials: Credentials ready to build an API client from.

    Raises:
        AuthenticationError: If no token was provided.
        ConfigError: If the Canvas URL is not an http(s) URL.
    """
    if not token:
        logger.critical("No Canvas token provided.")
        raise AuthenticationError("Neither --token argument nor CANVAS_TOKEN env var provided")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"Canvas URL must start with http:// or https:// (got {base_url!r})")
    logger.info(f"Using Canvas instance at {base_url}")
    return CanvasCredentials(base_url=base_url.rstrip("/"), token=token)
