"""Criterion evaluation: run the test command once and turn its exit status into points."""

import re
from typing import Dict, Optional

import config
from core.harness import ProcessSpec, spawn
from core.models import AssignmentData, Criterion, CriterionResult, Submission, format_points
from core.multiplexer import ConsoleSink, StreamMultiplexer
from ui import cli
from utils.logger import get_logger

logger = get_logger()

# A line starts after \n or a bare \r
_LEADING_SPACES = re.compile(r"(?:^|(?<=\r)) +", re.MULTILINE)


def normalize_instructions(text: str) -> str:
    """Turns Canvas' HTML line breaks (`<br/>` + CRLF) into plain newlines."""
    return text.replace("<br/>\r\n", "\n")


def preserve_indentation(text: str) -> str:
    """Replaces each line's leading spaces with as many non-collapsing spaces."""
    return _LEADING_SPACES.sub(lambda m: config.INDENT_CHAR * len(m.group()), text)


def criterion_environment(assignment: AssignmentData, submission: Submission, criterion: Criterion) -> Dict[str, str]:
    """The environment variables a test command may rely on."""
    rubric = assignment.rubric
    return {
        "ASSIGNMENT_ID": assignment.id,
        "ASSIGNMENT_NAME": assignment.name,
        "USER_ID": submission.user.id,
        "USER_NAME": submission.user.name,
        "RUBRIC_ID": rubric.id,
        "RUBRIC_TITLE": rubric.title,
        "RUBRIC_POINTS": format_points(rubric.points_possible),
        "CRITERIA_ID": criterion.id,
        "CRITERIA_DESCRIPTION": criterion.description,
        "CRITERIA_POINTS": format_points(criterion.points),
    }


class CriterionEvaluator:
    """Runs the configured test command for one (submission, criterion) pair."""

    def __init__(self, command: str = config.DEFAULT_COMMAND, sink: Optional[ConsoleSink] = None):
        self.command = command
        self.sink = sink or cli.RawConsoleSink()

    async def evaluate(
        self,
        assignment: AssignmentData,
        submission: Submission,
        criterion: Criterion,
        workdir: str,
    ) -> CriterionResult:
        """Feeds the criterion's instructions to the command and grades by exit status.

        stdin writing, stdout draining and stderr draining run concurrently;
        the verdict is read only after all three are done.

        Raises:
            GradingError: If the command cannot be started.
        """
        spec = ProcessSpec.from_command(
            self.command, cwd=workdir, env=criterion_environment(assignment, submission, criterion)
        )
        child = await spawn(spec)

        mux = StreamMultiplexer(self.sink)
        mux.attach(child.stdout, child.stderr)
        try:
            input_error = await child.write_input(normalize_instructions(criterion.long_description))
            if input_error is not None:
                mux.notice(f"Failed writing process input: {input_error!r}")

            output = await mux.drain()
            status = await child.wait()
        except BaseException:
            # The child must not outlive its workspace
            await child.kill()
            if not mux.drained:
                await mux.drain()
            raise
        logger.debug(f"Criterion {criterion.id} for user {submission.user.id}: status={status.returncode}, output={output!r}")

        return CriterionResult(
            points=criterion.points if status.success else 0,
            comments=preserve_indentation(output),
        )
