"""Best-effort discovery of the rubric association id needed to post grades."""

from typing import Optional

from config import GraderSettings
from core.models import AssignmentData
from ui import cli
from utils.logger import get_logger

logger = get_logger()


def discover_rubric_association_id(assignment: AssignmentData, settings: GraderSettings) -> Optional[int]:
    """Returns the single rubric association id used by existing assessments.

    With no assessment yet, or with assessments pointing at different
    associations, warns with remediation hints and returns None.
    """
    ids = [
        association_id
        for submission in assignment.submissions
        for association_id in submission.rubric_association_ids
    ]
    distinct = sorted(set(ids))

    if len(distinct) == 1:
        logger.info(f"Discovered rubric association {distinct[0]}.")
        return distinct[0]

    if not distinct:
        logger.warning(f"No rubric assessment exists yet for assignment {assignment.id}.")
        cli.display_warning("Couldn't figure out rubric association ID: No assessment for the assignment yet.")
        cli.display_info("Grade the Test User with a dummy grade to generate one.")
        cli.display_info(settings.speed_grader_url(assignment.course_id, assignment.id))
    else:
        logger.warning(f"Multiple rubric associations found for assignment {assignment.id}: {distinct}")
        cli.display_warning("Couldn't figure out rubric association ID: Multiple rubric association IDs found.")
        cli.display_info(f"Found the following ones: {', '.join(str(i) for i in distinct)}")
    cli.display_warning("Uploading evaluation results is impossible without a rubric association ID.")
    return None
