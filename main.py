"""Main execution script for the Canvas Rubric Grader."""

import asyncio
import json
import os
import re
import shlex
import sys
from typing import FrozenSet, Optional, Tuple

import click
from dotenv import load_dotenv
from pydantic import ValidationError

# Ensure the project root directory is in the Python path when run as a script
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import config
from config import GraderSettings, UserFilter
from utils.logger import setup_logger, get_logger
from utils.error_handler import APIError, AuthenticationError, ConfigError
import auth
from api_clients import build_client
from services.canvas_graphql import CanvasGraphQLService
from services.canvas_rest import CanvasRestService
from core.discovery import discover_rubric_association_id
from core.grader import Grader
from core.models import AssignmentData, IntermediateDataset
from core.uploader import Uploader
import ui.cli as cli

logger = get_logger()

ARGS_ENV_VAR = "CANVAS_EVAL_ARGS"


def parse_user_ids(value: Optional[str], description: str) -> Optional[FrozenSet[str]]:
    """Parses a comma separated list of numeric user ids.

    Raises:
        ConfigError: If any id is not numeric.
    """
    if not value:
        return None
    ids = [user for user in re.split(r",\s*", value.strip()) if user]
    for user in ids:
        if not user.isdigit():
            raise ConfigError(f"{description} contains a non-numeric user ({user!r})")
    return frozenset(str(int(user)) for user in ids)


def resolve_settings(
    *,
    verbose: bool,
    cmd: str,
    directory: Optional[str],
    canvas: str,
    token: Optional[str],
    assignment: Optional[str],
    user: Optional[str],
    except_user: Optional[str],
    test: bool,
    input_path: Optional[str],
    output_path: Optional[str],
    dry_run: bool,
) -> GraderSettings:
    """Validates the command line into one immutable settings value.

    Raises:
        AuthenticationError: If no Canvas token is available.
        ConfigError: For an unparsable test command, or a missing or non-numeric
            assignment or user id.
    """
    credentials = auth.get_credentials(canvas, token)

    try:
        command_parts = shlex.split(cmd)
    except ValueError as e:
        raise ConfigError(f"Test command cannot be parsed ({cmd!r}): {e}") from e
    if not command_parts:
        raise ConfigError("Test command is empty")

    assignment_id: Optional[int] = None
    if assignment:
        if not assignment.strip().isdigit():
            raise ConfigError("Assignment must be numeric (assignment ID), but it isn't")
        assignment_id = int(assignment)
    elif not input_path:
        raise ConfigError(
            "Unable to figure out assignment ID: Specify either --assignment argument or CANVAS_ASSIGNMENT env var"
        )

    if test:
        test_user = os.environ.get("CANVAS_TEST_USER")
        if not test_user:
            raise ConfigError("Could not figure out test user ID, please specify via CANVAS_TEST_USER env var")
        if not test_user.strip().isdigit():
            raise ConfigError("Test user ID is non-numeric")
        user = test_user

    return GraderSettings(
        canvas_url=credentials.base_url,
        token=credentials.token,
        assignment_id=assignment_id,
        command=cmd,
        directory=directory,
        user_filter=UserFilter(
            allow=parse_user_ids(user, "User filter"),
            deny=parse_user_ids(except_user, "Negative user filter") or frozenset(),
        ),
        input_path=input_path,
        output_path=output_path,
        verbose=verbose,
        dry_run=dry_run,
    )


def write_output(settings: GraderSettings, path: str, text: str, description: str):
    """Writes a JSON document, or only announces it in a dry run."""
    if settings.dry_run:
        cli.display_info(f"Would write {description} to {path}")
        return
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    logger.info(f"Wrote {description} to {path}")


async def fetch_metadata(
    settings: GraderSettings, graphql: CanvasGraphQLService, assignment_id: int
) -> Tuple[AssignmentData, Optional[int]]:
    assignment, raw = await graphql.fetch_assignment(assignment_id)
    if settings.verbose:
        write_output(settings, config.GRAPHQL_RESPONSE_FILE, json.dumps(raw), "graphql response")
    return assignment, discover_rubric_association_id(assignment, settings)


async def evaluate(settings: GraderSettings, graphql: CanvasGraphQLService, rest: CanvasRestService) -> int:
    """Evaluates the assignment; uploads right away unless a plan file was requested."""
    assert settings.assignment_id is not None
    cli.display_step(f"Fetching assignment {settings.assignment_id}...")
    assignment, rubric_association_id = await fetch_metadata(settings, graphql, settings.assignment_id)

    cli.display_step(f"Evaluating submissions for '{assignment.name}'...")
    dataset, outcomes = await Grader(settings, rest).process_assignment(assignment, rubric_association_id)
    cli.display_processed_summary(outcomes)

    if settings.verbose or settings.output_path:
        write_output(settings, settings.output_path or config.DEFAULT_PLAN_FILE, dataset.to_json(), "assessment plan")

    if not settings.output_path and rubric_association_id is not None:
        cli.display_step("Uploading assessments...")
        await Uploader(settings, rest).upload(dataset, rubric_association_id)
    return 0


async def upload_plan(settings: GraderSettings, graphql: CanvasGraphQLService, rest: CanvasRestService) -> int:
    """Uploads a previously saved assessment plan."""
    assert settings.input_path is not None
    try:
        dataset = IntermediateDataset.load(settings.input_path)
    except (OSError, ValueError, ValidationError) as e:
        raise ConfigError(f"Could not read assessment plan {settings.input_path}: {e}") from e

    rubric_association_id = dataset.rubric_association_id
    if rubric_association_id is None:
        _, rubric_association_id = await fetch_metadata(settings, graphql, settings.assignment_id or dataset.assignment)
    if rubric_association_id is None:
        return 1

    cli.display_step("Uploading assessments...")
    results = await Uploader(settings, rest).upload(dataset, rubric_association_id)
    if settings.verbose or settings.output_path:
        write_output(settings, settings.output_path or config.DEFAULT_RESULT_FILE, json.dumps(results), "upload result")
    return 0


async def run(settings: GraderSettings) -> int:
    credentials = auth.CanvasCredentials(base_url=settings.canvas_url, token=settings.token)
    async with build_client(credentials) as client:
        graphql = CanvasGraphQLService(client)
        rest = CanvasRestService(client)
        if settings.input_path:
            return await upload_plan(settings, graphql, rest)
        return await evaluate(settings, graphql, rest)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log and dump everything.")
@click.option("-c", "--cmd", default=config.DEFAULT_COMMAND, show_default=True,
              help="Test command run once per criterion; gets the criterion text on stdin.")
@click.option("-d", "--directory", "--dir", "directory", default=None,
              help="Parent directory of the per-submission workspaces.")
@click.option("--canvas", envvar="CANVAS_URL", default=config.DEFAULT_CANVAS_URL, show_default=True)
@click.option("-t", "--token", envvar="CANVAS_TOKEN", default=None)
@click.option("-a", "--assignment", envvar="CANVAS_ASSIGNMENT", default=None)
@click.option("-u", "--user", default=None, help="Only these users (ID,ID,...).")
@click.option("-U", "--except-user", default=None, help="Never these users (ID,ID,...).")
@click.option("--test", is_flag=True, default=False, help="Only the user in CANVAS_TEST_USER.")
@click.option("-i", "--input", "input_path", default=None, help="Upload this assessment plan.")
@click.option("-o", "--output", "output_path", default=None,
              help="Save the assessment plan (or upload results) here instead of uploading.")
@click.option("--dry-run", is_flag=True, default=False, help="No uploads and no file writes.")
def main(**options):
    """Evaluates Canvas submissions rubric criterion by criterion and uploads the assessments."""
    setup_logger(verbose=options["verbose"])
    logger.info("Starting Canvas Rubric Grader.")
    if options["verbose"]:
        cli.display_info("CLI arguments (parsed):")
        cli.display_json({k: v for k, v in options.items() if k != "token"})

    try:
        settings = resolve_settings(**options)
        exit_code = asyncio.run(run(settings))
    except (AuthenticationError, ConfigError) as e:
        logger.critical(f"Setup Error: {e}", exc_info=config.DEBUG)
        cli.display_error(f"Setup Error: {e}")
        exit_code = 1
    except APIError as e:
        logger.error(f"Canvas API Error: {e}", exc_info=config.DEBUG)
        cli.display_error(f"API Error ({e.service or 'Unknown'}): {e}")
        exit_code = 1
    except KeyboardInterrupt:
        logger.info("Operation interrupted by user (Ctrl+C).")
        cli.display_warning("Operation interrupted.")
        exit_code = 130
    except Exception as e:
        # Catch-all for unexpected errors
        logger.critical(f"An unexpected error occurred: {e}", exc_info=True)
        cli.display_error(f"An unexpected error occurred: {e}. Check logs for details.")
        exit_code = 1
    sys.exit(exit_code)


def entrypoint():
    """Console script entry point; CANVAS_EVAL_ARGS replaces the command line when set."""
    load_dotenv()
    args = os.environ.get(ARGS_ENV_VAR)
    main(args=args.split() if args else None)


if __name__ == "__main__":
    entrypoint()
