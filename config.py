"""Configuration settings for the Canvas Rubric Grader."""

import os
import logging
from typing import Final, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

# Debug flag: 1 = debug mode (verbose logging), 0 = production mode
DEBUG: Final[int] = int(os.environ.get("GRADER_DEBUG", "0"))

# --- Canvas Settings ---

DEFAULT_CANVAS_URL: Final[str] = "https://canvas.elte.hu"
# Timeout (seconds) for every HTTP request made to Canvas
HTTP_TIMEOUT: Final[float] = float(os.environ.get("GRADER_HTTP_TIMEOUT", "60"))

# --- Evaluation Settings ---

# Command run once per rubric criterion, split shell-style
DEFAULT_COMMAND: Final[str] = "bash"
# Size of a single read from the child's stdout/stderr
READ_CHUNK_SIZE: Final[int] = 1024
# Console indentation reproduced after every newline of child output.
# As wide as a criterion banner prefix like "[01/12 #3] ".
WRITE_PAD: Final[str] = " " * len("[00/00 #0] ")
# Non-collapsing space substituted for leading spaces in comments
INDENT_CHAR: Final[str] = "\u2008"

# --- File Paths ---
DEFAULT_PLAN_FILE: Final[str] = "assessment-plan.json"
DEFAULT_RESULT_FILE: Final[str] = "assessment-result.json"
GRAPHQL_RESPONSE_FILE: Final[str] = "graphql-response.json"
# Define log file path within a /logs subdirectory
LOG_DIR: Final[str] = os.environ.get("GRADER_LOG_DIR", "logs")
LOG_FILE: Final[str] = os.path.join(LOG_DIR, "canvas_grader.log")

# --- Logging Configuration ---
# LOG_LEVEL is used for file logging, console logging is only enabled in DEBUG/verbose mode
LOG_LEVEL = logging.DEBUG if DEBUG else logging.INFO
# Structured log format: timestamp, level, logger, module.function:line, message
LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(module)s.%(funcName)s:%(lineno)d | %(message)s'


class UserFilter(BaseModel):
    """Optional allow-list and deny-list of Canvas user ids.

    A user is admitted unless an allow-list is given and lacks them, or the
    deny-list contains them.
    """
    model_config = ConfigDict(frozen=True)

    allow: Optional[FrozenSet[str]] = None
    deny: FrozenSet[str] = frozenset()

    def admits(self, user_id: str) -> bool:
        if self.allow is not None and user_id not in self.allow:
            return False
        return user_id not in self.deny


class GraderSettings(BaseModel):
    """Resolved run configuration, built once at startup and passed explicitly."""
    model_config = ConfigDict(frozen=True)

    canvas_url: str = DEFAULT_CANVAS_URL
    token: str
    assignment_id: Optional[int] = None
    command: str = DEFAULT_COMMAND
    directory: Optional[str] = None
    user_filter: UserFilter = UserFilter()
    input_path: Optional[str] = None
    output_path: Optional[str] = None
    verbose: bool = False
    dry_run: bool = False

    def submissions_url(self, course_id: int | str, assignment_id: int | str) -> str:
        return f"{self.canvas_url}/courses/{course_id}/assignments/{assignment_id}/submissions/"

    def speed_grader_url(self, course_id: int | str, assignment_id: int | str) -> str:
        return f"{self.canvas_url}/courses/{course_id}/gradebook/speed_grader?assignment_id={assignment_id}"


# Basic check
if __name__ == "__main__":
    print(f"Debug Mode: {'On' if DEBUG else 'Off'}")
    print(f"Log Level: {logging.getLevelName(LOG_LEVEL)}")
    print(f"Log File: {LOG_FILE}")
    print(f"Default Canvas URL: {DEFAULT_CANVAS_URL}")
    print(f"Default Command: {DEFAULT_COMMAND}")
    print(f"HTTP Timeout: {HTTP_TIMEOUT}")
