"""Wrapper for the Canvas GraphQL assignment metadata query."""

from typing import Any, Dict, Tuple

import httpx

import config
from core.models import AssignmentData
from utils.logger import get_logger
from utils.error_handler import APIError
from utils.retry import retry_on_exception

logger = get_logger()

# Define common retryable errors (rate limits, server errors, network issues)
RETRYABLE_GRAPHQL_ERRORS = (APIError, httpx.TransportError)
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

def should_retry_graphql(e: Exception) -> bool:
    """Predicate for the retry decorator: transport errors and retryable status codes."""
    if isinstance(e, APIError):
        return e.status_code in RETRYABLE_STATUS_CODES
    return isinstance(e, httpx.TransportError)

ASSIGNMENT_QUERY = """query DataQuery($assignment: ID!) {
  assignment(id: $assignment) {
    _id
    name
    course {
      _id
    }
    rubric {
      _id
      title
      criteria {
        _id
        description
        longDescription
        ratings {
          _id
          description
          longDescription
          points
        }
        points
      }
      pointsPossible
    }
    submissionsConnection {
      nodes {
        _id
        user {
          _id
          name
        }
        excused
        missing
        attachments {
          _id
          displayName
          url
        }
        rubricAssessmentsConnection {
          nodes {
            _id
            rubricAssociation {
              _id
            }
          }
        }
      }
    }
  }
}
"""

class CanvasGraphQLService:
    """Fetches assignment, rubric and submission metadata in one query."""

    SERVICE_NAME = 'canvas-graphql'
    ENDPOINT = '/api/graphql'

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @retry_on_exception(exceptions=RETRYABLE_GRAPHQL_ERRORS, max_attempts=3, should_retry=should_retry_graphql)
    async def fetch_assignment(self, assignment_id: int) -> Tuple[AssignmentData, Dict[str, Any]]:
        """Runs the assignment query.

        Args:
            assignment_id: Canvas assignment id.

        Returns:
            A tuple of the parsed assignment and the raw `data` member of the response.

        Raises:
            APIError: On a non-200 response, GraphQL errors, or an unusable payload.
        """
        logger.info(f"Fetching assignment {assignment_id} metadata...")
        response = await self.client.post(
            self.ENDPOINT,
            json={"query": ASSIGNMENT_QUERY, "variables": {"assignment": str(assignment_id)}},
        )
        if response.status_code != 200:
            logger.error(f"GraphQL query failed: {response.status_code} {response.text}", exc_info=config.DEBUG)
            raise APIError(
                f"Failed to fetch assignment {assignment_id}: {response.status_code}",
                status_code=response.status_code,
                service=self.SERVICE_NAME
            )
        try:
            body = response.json()
        except ValueError as e:
            raise APIError(f"GraphQL response is not JSON: {e}", service=self.SERVICE_NAME) from e

        if body.get("errors"):
            logger.error(f"GraphQL query returned errors: {body['errors']}")
            raise APIError(f"GraphQL errors: {body['errors']}", service=self.SERVICE_NAME)
        data = body.get("data") or {}
        if not data.get("assignment"):
            raise APIError(f"Assignment {assignment_id} not found or not accessible", service=self.SERVICE_NAME)

        try:
            assignment = AssignmentData.from_graphql(data)
        except (KeyError, TypeError, ValueError) as e:
            raise APIError(f"Unexpected assignment payload: {e}", service=self.SERVICE_NAME) from e

        logger.info(
            f"Fetched assignment '{assignment.name}' with {len(assignment.rubric.criteria)} criteria "
            f"and {len(assignment.submissions)} submissions."
        )
        return assignment, data
