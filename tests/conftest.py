"""Shared fixtures: sample Canvas payloads, settings, a fake REST service and console capture."""

from __future__ import annotations

import copy
import io
import os
import shlex
import sys
import tempfile
import typing as t

# Keep test runs from writing logs into the working directory
os.environ.setdefault("GRADER_LOG_DIR", tempfile.mkdtemp(prefix="canvas-grader-logs-"))

import pytest
from rich.console import Console

import ui.cli as cli
from config import GraderSettings
from core.models import AssessmentRecord, AssignmentData
from utils.error_handler import AttachmentError

GRAPHQL_DATA: dict[str, t.Any] = {
    "assignment": {
        "_id": "100",
        "name": "Homework 1",
        "course": {"_id": "10"},
        "rubric": {
            "_id": "r1",
            "title": "HW1 rubric",
            "criteria": [
                {
                    "_id": "c1",
                    "description": "Compiles",
                    "longDescription": "Run make<br/>\r\nthen run the tests",
                    "ratings": [],
                    "points": 3,
                },
                {
                    "_id": "c2",
                    "description": "Tests pass",
                    "longDescription": None,
                    "ratings": [],
                    "points": 2,
                },
            ],
            "pointsPossible": 5,
        },
        "submissionsConnection": {
            "nodes": [
                {
                    "_id": "s1",
                    "user": {"_id": "42", "name": "Ada Lovelace"},
                    "excused": False,
                    "missing": False,
                    "attachments": [
                        {"_id": "a1", "displayName": "main.py", "url": "https://files.example.edu/a1"},
                    ],
                    "rubricAssessmentsConnection": {
                        "nodes": [{"_id": "ra1", "rubricAssociation": {"_id": "7"}}],
                    },
                },
            ],
        },
    },
}


def submission_node(
    submission_id: str,
    user_id: str,
    name: str,
    attachments: list[tuple[str, str]] | None = None,
    associations: list[str] | None = None,
) -> dict[str, t.Any]:
    return {
        "_id": submission_id,
        "user": {"_id": user_id, "name": name},
        "excused": False,
        "missing": False,
        "attachments": [
            {"_id": f"a-{display_name}", "displayName": display_name, "url": url}
            for display_name, url in (attachments or [])
        ],
        "rubricAssessmentsConnection": {
            "nodes": [{"_id": f"ra-{a}", "rubricAssociation": {"_id": a}} for a in (associations or [])],
        },
    }


@pytest.fixture
def graphql_data() -> dict[str, t.Any]:
    return copy.deepcopy(GRAPHQL_DATA)


@pytest.fixture
def assignment(graphql_data: dict[str, t.Any]) -> AssignmentData:
    return AssignmentData.from_graphql(graphql_data)


@pytest.fixture
def make_assignment(graphql_data: dict[str, t.Any]) -> t.Callable[..., AssignmentData]:
    """Build the sample assignment with a different list of submissions."""

    def make(*nodes: dict[str, t.Any]) -> AssignmentData:
        data = copy.deepcopy(graphql_data)
        data["assignment"]["submissionsConnection"]["nodes"] = list(nodes)
        return AssignmentData.from_graphql(data)

    return make


@pytest.fixture
def make_settings() -> t.Callable[..., GraderSettings]:
    def make(**overrides: t.Any) -> GraderSettings:
        values: dict[str, t.Any] = {
            "canvas_url": "https://canvas.example.edu",
            "token": "secret-token",
            "assignment_id": 100,
        }
        values.update(overrides)
        return GraderSettings(**values)

    return make


@pytest.fixture
def python_command() -> t.Callable[[str], str]:
    """Turn a Python snippet into a test command string."""

    def make(script: str) -> str:
        return f"{shlex.quote(sys.executable)} -c {shlex.quote(script)}"

    return make


@pytest.fixture
def console_output(monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
    """Redirect the CLI console into a buffer without colors or markup codes."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, highlight=False, force_terminal=False, color_system=None)
    monkeypatch.setattr(cli, "console", console)
    return buffer


class ListSink(object):
    """Console sink that records every write."""

    def __init__(self) -> None:
        self.writes: list[str] = []

    def write(self, text: str) -> None:
        self.writes.append(text)

    @property
    def text(self) -> str:
        return "".join(self.writes)


@pytest.fixture
def sink() -> ListSink:
    return ListSink()


class FakeRestService(object):
    """Stands in for CanvasRestService; records calls and serves canned data."""

    def __init__(self) -> None:
        self.content = b"print('hello')\n"
        self.failing_urls: set[str] = set()
        self.downloads: list[tuple[str, str]] = []
        self.posts: list[tuple[int, int, AssessmentRecord]] = []
        self.responses: dict[str, t.Any] = {}

    async def download_attachment(self, url: str, destination: str) -> int:
        self.downloads.append((url, destination))
        if url in self.failing_urls:
            raise AttachmentError("Unexpected status: 404 Not Found")
        with open(destination, "xb") as f:
            f.write(self.content)
        return len(self.content)

    async def post_rubric_assessment(
        self, course_id: int, rubric_association_id: int, record: AssessmentRecord
    ) -> dict[str, t.Any]:
        self.posts.append((course_id, rubric_association_id, record))
        response = self.responses.get(record.user_id, {"id": len(self.posts)})
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_rest() -> FakeRestService:
    return FakeRestService()
