"""Tests for the evaluation orchestrator: filters, workspaces, faults and the end-to-end flow."""

from __future__ import annotations

import asyncio
import os

import httpx
import pytest

from config import UserFilter
from core.evaluator import CriterionEvaluator
from core.grader import Grader, check_attachment_name
from services.canvas_rest import CanvasRestService
from utils.error_handler import UnsafeAttachmentNameError

from conftest import submission_node

GRADE_BY_CRITERION = (
    "import os, sys; sys.stdin.read(); "
    "print('checked', os.environ['CRITERIA_ID'], sorted(os.listdir('.'))); "
    "sys.exit(0 if os.environ['CRITERIA_ID'] == 'c1' else 1)"
)


def workspace_leftovers(parent) -> list[str]:
    return sorted(os.listdir(parent))


class TestCheckAttachmentName(object):
    def test_plain_names_pass(self) -> None:
        assert check_attachment_name("main.py") == "main.py"
        assert check_attachment_name("notes v2.txt") == "notes v2.txt"

    @pytest.mark.parametrize("name", ["../escape.py", "dir/main.py", "/etc/passwd", "..\\x.py", "..", ".", ""])
    def test_names_that_leave_the_workspace_are_rejected(self, name) -> None:
        with pytest.raises(UnsafeAttachmentNameError):
            check_attachment_name(name)


class TestEndToEnd(object):
    """Two criteria (3 and 2 points), one submission by user 42 with one attachment."""

    def test_record_gets_points_for_passing_criterion_only(
        self, assignment, make_settings, fake_rest, python_command, console_output, tmp_path
    ) -> None:
        settings = make_settings(command=python_command(GRADE_BY_CRITERION), directory=str(tmp_path))

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest).process_assignment(assignment, 7))

        assert dataset.canvas == "https://canvas.example.edu"
        assert (dataset.course, dataset.assignment, dataset.rubric_association_id) == (10, 100, 7)
        [record] = dataset.records
        assert record.user_id == "42"
        assert record.assessment_type == "grading"
        assert record.criteria["c1"].points == 3
        assert record.criteria["c2"].points == 0
        assert record.criteria["c1"].comments == "checked c1 ['main.py']\n"
        assert record.model_dump()["criterion_c1"]["points"] == 3
        assert [(o.status, o.points) for o in outcomes] == [("evaluated", 3)]
        assert fake_rest.downloads[0][0] == "https://files.example.edu/a1"
        assert workspace_leftovers(tmp_path) == []

    def test_console_shows_banners_in_order(
        self, assignment, make_settings, fake_rest, python_command, console_output, tmp_path
    ) -> None:
        settings = make_settings(command=python_command(GRADE_BY_CRITERION), directory=str(tmp_path))

        asyncio.run(Grader(settings, fake_rest).process_assignment(assignment))

        text = console_output.getvalue()
        assert "[01/1] Evaluating submission s1 by Ada Lovelace" in text
        assert text.index("[01/01 #1] Testing for Compiles") < text.index("[01/01 #2] Testing for Tests pass")
        assert "checked c1" in text


class TestFiltering(object):
    def test_submission_outside_allow_list_is_skipped(
        self, assignment, make_settings, fake_rest, console_output, tmp_path
    ) -> None:
        settings = make_settings(directory=str(tmp_path), user_filter=UserFilter(allow=frozenset({"2"})))
        evaluator = CriterionEvaluator("definitely-not-run")

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest, evaluator).process_assignment(assignment))

        assert dataset.records == []
        assert [o.status for o in outcomes] == ["skipped"]
        assert fake_rest.downloads == []

    def test_denied_user_is_skipped_others_evaluated(
        self, make_assignment, make_settings, fake_rest, python_command, console_output, tmp_path
    ) -> None:
        assignment = make_assignment(
            submission_node("s1", "1", "One"),
            submission_node("s2", "2", "Two"),
            submission_node("s3", "3", "Three"),
        )
        settings = make_settings(
            command=python_command("import sys; sys.stdin.read()"),
            directory=str(tmp_path),
            user_filter=UserFilter(deny=frozenset({"3"})),
            verbose=True,
        )

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest).process_assignment(assignment))

        assert [r.user_id for r in dataset.records] == ["1", "2"]
        assert [o.status for o in outcomes] == ["evaluated", "evaluated", "skipped"]
        assert "Skipping submission s3 by Three" in console_output.getvalue()

    def test_deny_wins_over_allow(self) -> None:
        user_filter = UserFilter(allow=frozenset({"1", "2"}), deny=frozenset({"2"}))

        assert user_filter.admits("1") is True
        assert user_filter.admits("2") is False
        assert user_filter.admits("3") is False
        assert UserFilter().admits("3") is True


class TestSubmissionFaults(object):
    """A failing submission yields no record, removes its workspace and lets the run go on."""

    def test_download_failure_skips_only_that_submission(
        self, make_assignment, make_settings, fake_rest, python_command, console_output, tmp_path
    ) -> None:
        assignment = make_assignment(
            submission_node("s1", "1", "One", attachments=[("a.py", "https://files.example.edu/missing")]),
            submission_node("s2", "2", "Two", attachments=[("b.py", "https://files.example.edu/b")]),
        )
        fake_rest.failing_urls.add("https://files.example.edu/missing")
        settings = make_settings(command=python_command("import sys; sys.stdin.read()"), directory=str(tmp_path))

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest).process_assignment(assignment))

        assert [r.user_id for r in dataset.records] == ["2"]
        assert outcomes[0].status == "failed"
        assert "404" in (outcomes[0].error or "")
        assert outcomes[1].status == "evaluated"
        assert workspace_leftovers(tmp_path) == []

    def test_unsafe_display_name_fails_submission_without_download(
        self, make_assignment, make_settings, fake_rest, console_output, tmp_path
    ) -> None:
        assignment = make_assignment(
            submission_node("s1", "1", "One", attachments=[("../evil.sh", "https://files.example.edu/evil")]),
        )
        settings = make_settings(directory=str(tmp_path))

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest).process_assignment(assignment))

        assert dataset.records == []
        assert outcomes[0].status == "failed"
        assert fake_rest.downloads == []
        assert workspace_leftovers(tmp_path) == []

    def test_unstartable_command_fails_submission(
        self, assignment, make_settings, fake_rest, console_output, tmp_path
    ) -> None:
        settings = make_settings(command="definitely-not-a-test-command-xyz", directory=str(tmp_path))

        dataset, outcomes = asyncio.run(Grader(settings, fake_rest).process_assignment(assignment))

        assert dataset.records == []
        assert outcomes[0].status == "failed"
        assert workspace_leftovers(tmp_path) == []

    def test_workspace_removed_when_evaluator_raises_unexpectedly(
        self, assignment, make_settings, fake_rest, console_output, tmp_path
    ) -> None:
        seen: list[str] = []

        class ExplodingEvaluator(CriterionEvaluator):
            async def evaluate(self, assignment, submission, criterion, workdir):
                seen.append(workdir)
                assert os.path.exists(os.path.join(workdir, "main.py"))
                raise RuntimeError("evaluator crashed")

        settings = make_settings(directory=str(tmp_path))

        with pytest.raises(RuntimeError):
            asyncio.run(Grader(settings, fake_rest, ExplodingEvaluator()).process_assignment(assignment))

        assert len(seen) == 1
        assert not os.path.exists(seen[0])
        assert workspace_leftovers(tmp_path) == []


class TestAttachmentNamesWithRealDownloads(object):
    """Names the filesystem cannot hold fail their submission; later submissions still run."""

    @staticmethod
    def run_with_real_service(assignment, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"print('submitted')\n")

        async def scenario():
            transport = httpx.MockTransport(handler)
            async with httpx.AsyncClient(base_url=settings.canvas_url, transport=transport) as client:
                return await Grader(settings, CanvasRestService(client)).process_assignment(assignment)

        return asyncio.run(scenario())

    @pytest.mark.parametrize("bad_name", ["a" * 300 + ".py", "main\0.py"])
    def test_unstorable_name_fails_only_its_submission(
        self, make_assignment, make_settings, python_command, console_output, tmp_path, bad_name
    ) -> None:
        assignment = make_assignment(
            submission_node("s1", "1", "One", attachments=[(bad_name, "https://files.example.edu/a")]),
            submission_node("s2", "2", "Two", attachments=[("main.py", "https://files.example.edu/b")]),
        )
        settings = make_settings(command=python_command("import sys; sys.stdin.read()"), directory=str(tmp_path))

        dataset, outcomes = self.run_with_real_service(assignment, settings)

        assert [o.status for o in outcomes] == ["failed", "evaluated"]
        assert [r.user_id for r in dataset.records] == ["2"]
        assert workspace_leftovers(tmp_path) == []

    def test_longest_allowed_name_is_accepted(self) -> None:
        name = "a" * 252 + ".py"

        assert check_attachment_name(name) == name
        with pytest.raises(UnsafeAttachmentNameError):
            check_attachment_name("é" * 128)
