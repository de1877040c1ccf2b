"""Upload of an assessment plan to Canvas, one rubric assessment per user."""

from typing import Any, Dict, List

from config import GraderSettings
from core.models import AssessmentRecord, IntermediateDataset, format_points
from services.canvas_rest import CanvasRestService
from ui import cli
from utils.logger import get_logger
from utils.error_handler import APIError

logger = get_logger()


class Uploader:
    """Posts assessment records independently and counts the failures."""

    def __init__(self, settings: GraderSettings, rest_service: CanvasRestService):
        self.settings = settings
        self.rest_service = rest_service

    def select_records(self, dataset: IntermediateDataset) -> List[AssessmentRecord]:
        """Re-applies the user filter to the plan's records."""
        selected = []
        for record in dataset.records:
            if self.settings.user_filter.admits(record.user_id):
                selected.append(record)
            else:
                cli.display_info(f"Filtered out user {record.user_id}")
        return selected

    async def _post(self, dataset: IntermediateDataset, rubric_association_id: int, record: AssessmentRecord) -> Dict[str, Any]:
        if self.settings.dry_run:
            cli.display_info(
                f"Would upload assessment of {format_points(record.total_points())} points for {record.user_id}"
            )
            return {}
        try:
            result = await self.rest_service.post_rubric_assessment(dataset.course, rubric_association_id, record)
        except APIError as e:
            return {"user_id": record.user_id, "errors": [str(e)]}
        if not isinstance(result, dict):
            return {"user_id": record.user_id, "errors": [f"Unexpected response: {result!r}"]}
        return result

    async def upload(self, dataset: IntermediateDataset, rubric_association_id: int) -> List[Dict[str, Any]]:
        """Uploads every admitted record of the plan.

        A failing record never stops the others; failures are dumped and
        counted at the end.

        Returns:
            One result per uploaded record, in order.
        """
        records = self.select_records(dataset)
        logger.info(f"Uploading {len(records)} assessments for rubric association {rubric_association_id}...")
        if self.settings.verbose:
            cli.display_info(f"Uploading assessments for rubric association {rubric_association_id}...")

        cli.start_upload_progress(len(records))
        results: List[Dict[str, Any]] = []
        failures: List[Dict[str, Any]] = []
        for record in records:
            result = await self._post(dataset, rubric_association_id, record)
            results.append(result)
            if result.get("errors"):
                logger.error(f"Upload for user {record.user_id} failed: {result['errors']}")
                cli.mark_upload("E")
                failures.append(result)
            elif not self.settings.dry_run:
                cli.mark_upload("#")
        cli.finish_upload_progress(self.settings.dry_run)

        if self.settings.verbose:
            cli.display_json(results)
        cli.display_upload_failures(failures)
        cli.display_upload_summary(len(failures), len(records))
        logger.info(f"Upload finished ({len(failures)} failed of {len(records)}).")
        return results
