"""Wrapper for Canvas REST interactions: attachment downloads and rubric assessments."""

from typing import Any, Dict

import httpx

import config
from core.models import AssessmentRecord
from utils.logger import get_logger
from utils.error_handler import APIError, AttachmentError

logger = get_logger()

class CanvasRestService:
    """Provides the per-submission and per-record Canvas calls."""

    SERVICE_NAME = 'canvas-rest'

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def download_attachment(self, url: str, destination: str) -> int:
        """Streams an attachment into a new file.

        Args:
            url: Attachment download URL.
            destination: Path of the file to create; it must not exist yet.

        Returns:
            Number of bytes written.

        Raises:
            AttachmentError: On a non-200 status, an empty body, a network
                error, or if the destination already exists or cannot be
                created.
        """
        logger.debug(f"Downloading {url} to {destination}")
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise AttachmentError(f"Unexpected status: {response.status_code} {response.reason_phrase}")
                written = 0
                with open(destination, "xb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as e:
            raise AttachmentError(f"Failed downloading {url}: {e}") from e
        except FileExistsError as e:
            raise AttachmentError(f"Attachment file already exists: {destination}") from e
        except (OSError, ValueError) as e:
            # Names the filesystem cannot hold (too long, NUL byte) or an unwritable workspace
            raise AttachmentError(f"Cannot create attachment file {destination!r}: {e}") from e

        if not written:
            raise AttachmentError("Got no body")
        logger.info(f"Downloaded {written} bytes to {destination}")
        return written

    async def post_rubric_assessment(self, course_id: int, rubric_association_id: int, record: AssessmentRecord) -> Dict[str, Any]:
        """Posts one rubric assessment.

        Returns:
            The decoded JSON response; an `errors` member marks a rejected record.

        Raises:
            APIError: On a network error or a response that is not JSON.
        """
        url = f"/api/v1/courses/{course_id}/rubric_associations/{rubric_association_id}/rubric_assessments"
        logger.debug(f"POST {url} {record.model_dump()}")
        try:
            response = await self.client.post(url, json={"rubric_assessment": record.model_dump()})
        except httpx.HTTPError as e:
            logger.error(f"Failed to post assessment for user {record.user_id}: {e}", exc_info=config.DEBUG)
            raise APIError(f"Failed to post assessment for user {record.user_id}: {e}", service=self.SERVICE_NAME) from e
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Assessment upload for user {record.user_id} returned a non-JSON response",
                status_code=response.status_code,
                service=self.SERVICE_NAME
            ) from e
