"""Core logic for evaluating every submission of an assignment against its rubric."""

import os
import tempfile
from typing import Dict, List, Optional, Tuple

from config import GraderSettings
from core.evaluator import CriterionEvaluator
from core.models import (AssessmentRecord, AssignmentData, CriterionResult, IntermediateDataset,
                         Submission, SubmissionOutcome)
from services.canvas_rest import CanvasRestService
from ui import cli
from utils.logger import get_logger
from utils.error_handler import APIError, AttachmentError, GradingError, UnsafeAttachmentNameError

logger = get_logger()

# Faults that abort one submission but not the run
SUBMISSION_ERRORS = (AttachmentError, APIError, GradingError)

# NAME_MAX of common filesystems
MAX_NAME_BYTES = 255


def check_attachment_name(display_name: str) -> str:
    """Rejects display names that could leave the submission workspace.

    Raises:
        UnsafeAttachmentNameError: If the name holds a path separator or a NUL
            byte, is a relative path component, or is too long for a file name.
    """
    if "/" in display_name or "\\" in display_name or display_name in ("", ".", ".."):
        raise UnsafeAttachmentNameError(f"Attachment display name is not a plain file name ({display_name!r})")
    if "\0" in display_name or len(display_name.encode("utf-8")) > MAX_NAME_BYTES:
        raise UnsafeAttachmentNameError(f"Attachment display name cannot be stored as a file ({display_name!r})")
    return display_name


class Grader:
    """Orchestrates the evaluation of an assignment's submissions.

    Submissions and criteria are processed strictly one after another; each
    submission gets its own temporary workspace that is removed before the
    next one starts.
    """

    def __init__(
        self,
        settings: GraderSettings,
        rest_service: CanvasRestService,
        evaluator: Optional[CriterionEvaluator] = None,
    ):
        self.settings = settings
        self.rest_service = rest_service
        self.evaluator = evaluator or CriterionEvaluator(settings.command)
        logger.info(f"Grader initialized with command {settings.command!r}")

    async def _download_attachments(self, submission: Submission, workdir: str):
        for attachment in submission.attachments:
            name = check_attachment_name(attachment.display_name)
            await self.rest_service.download_attachment(attachment.url, os.path.join(workdir, name))

    async def evaluate_submission(self, assignment: AssignmentData, index: int, submission: Submission) -> AssessmentRecord:
        """Downloads one submission's attachments and runs every criterion on them.

        Raises:
            AttachmentError: If an attachment cannot be fetched safely.
            GradingError: If the test command cannot be started.
        """
        total = len(assignment.submissions)
        results: Dict[str, CriterionResult] = {}

        with tempfile.TemporaryDirectory(dir=self.settings.directory) as workdir:
            logger.debug(f"Created workspace {workdir} for submission {submission.id}")
            try:
                await self._download_attachments(submission, workdir)
                for criterion_index, criterion in enumerate(assignment.rubric.criteria):
                    cli.display_criterion_banner(index, total, criterion_index, criterion)
                    results[criterion.id] = await self.evaluator.evaluate(assignment, submission, criterion, workdir)
            finally:
                logger.debug(f"Cleaning up workspace {workdir}...")

        return AssessmentRecord(user_id=submission.user.id, criteria=results)

    async def process_assignment(
        self,
        assignment: AssignmentData,
        rubric_association_id: Optional[int] = None,
    ) -> Tuple[IntermediateDataset, List[SubmissionOutcome]]:
        """Evaluates all admitted submissions of an assignment.

        Args:
            assignment: Metadata returned by the assignment query.
            rubric_association_id: Carried into the dataset when already known.

        Returns:
            The assessment plan and one outcome per submission.
        """
        dataset = IntermediateDataset(
            canvas=self.settings.canvas_url,
            course=int(assignment.course_id),
            assignment=int(assignment.id),
            rubric_association_id=rubric_association_id,
        )
        outcomes: List[SubmissionOutcome] = []
        total = len(assignment.submissions)
        url = self.settings.submissions_url(assignment.course_id, assignment.id)
        logger.info(f"Found {total} submissions to process.")

        for index, submission in enumerate(assignment.submissions):
            user = submission.user
            outcome = dict(index=index, submission_id=submission.id, user_id=user.id, user_name=user.name)

            if not self.settings.user_filter.admits(user.id):
                logger.info(f"Skipping submission {submission.id} by {user.name} ({user.id})")
                if self.settings.verbose:
                    cli.display_skipped_submission(index, total, submission, url)
                outcomes.append(SubmissionOutcome(status="skipped", **outcome))
                continue

            cli.display_submission_banner(index, total, submission, url)
            logger.info(f"Processing submission {index + 1}/{total} (ID: {submission.id}, User: {user.id})...")
            try:
                record = await self.evaluate_submission(assignment, index, submission)
            except SUBMISSION_ERRORS as e:
                logger.error(f"Evaluation of submission {submission.id} failed: {e}")
                cli.display_error(f"Submission {submission.id} by {user.name} not evaluated: {e}")
                outcomes.append(SubmissionOutcome(status="failed", error=str(e), **outcome))
                continue

            dataset.records.append(record)
            outcomes.append(SubmissionOutcome(status="evaluated", points=record.total_points(), **outcome))
            if self.settings.verbose:
                cli.display_record(record)

        logger.info(f"Finished evaluating assignment {assignment.id}. {len(dataset.records)} assessments planned.")
        return dataset, outcomes
