"""
Tests for the command-line interface.
"""

import json
from pathlib import Path
from typing import Generator

import pytest
from typer.testing import CliRunner

from exam_correction.config import get_settings
from exam_correction.main import app
from exam_correction.models import Exam, UserAnswer

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Provide the grader configuration through the environment."""
    monkeypatch.setenv("GRADER_API_KEY", "test-api-key-for-testing")
    monkeypatch.setenv("GRADER_BASE_URL", "https://test.api.local")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def state_file(temp_dir: Path, mixed_exam: Exam, mixed_answers: list[UserAnswer]) -> Path:
    """State file holding the mixed exam and one submission."""
    exam_file = temp_dir / "exam.json"
    exam_file.write_text(mixed_exam.model_dump_json(), encoding="utf-8")
    answers_file = temp_dir / "answers.json"
    answers_file.write_text(
        json.dumps([a.model_dump(mode="json") for a in mixed_answers]), encoding="utf-8"
    )
    state = temp_dir / "state.json"

    result = runner.invoke(app, ["add-exam", str(exam_file), "--store", str(state)])
    assert result.exit_code == 0, result.output
    result = runner.invoke(
        app, ["submit", "exam-mixed", "u1", str(answers_file), "--name", "Ana", "--store", str(state)]
    )
    assert result.exit_code == 0, result.output
    return state


class TestCLI:
    """Tests for CLI commands."""

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "correct-all" in result.output

    def test_submit_leaves_submission_pending(self, state_file: Path) -> None:
        result = runner.invoke(app, ["show", "exam-mixed", "u1", "--store", str(state_file)])

        assert result.exit_code == 0
        assert "pending" in result.output

    def test_manual_correction_publishes_score(self, state_file: Path) -> None:
        result = runner.invoke(
            app,
            [
                "correct", "exam-mixed", "u1", "q3",
                "--score", "8", "--feedback", "Good answer", "--grader", "admin-1",
                "--store", str(state_file),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "All questions corrected" in result.output
        assert "60.00" in result.output

        shown = runner.invoke(app, ["show", "exam-mixed", "u1", "--store", str(state_file)])
        assert "corrected" in shown.output
        assert "Good answer" in shown.output

    def test_duplicate_submit_fails(self, state_file: Path, temp_dir: Path) -> None:
        result = runner.invoke(
            app, ["submit", "exam-mixed", "u1", str(temp_dir / "answers.json"), "--store", str(state_file)]
        )

        assert result.exit_code == 1
        assert "already submitted" in result.output

    def test_invalid_correction_fails(self, state_file: Path) -> None:
        result = runner.invoke(
            app,
            ["correct", "exam-mixed", "u1", "q3", "--score", "15", "--feedback", "x", "--store", str(state_file)],
        )

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_show_unknown_submission(self, state_file: Path) -> None:
        result = runner.invoke(app, ["show", "exam-mixed", "nobody", "--store", str(state_file)])

        assert result.exit_code == 1

    def test_missing_answers_file(self, temp_dir: Path) -> None:
        result = runner.invoke(app, ["submit", "exam-mixed", "u1", str(temp_dir / "nope.json")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_malformed_answers_file(self, state_file: Path, temp_dir: Path) -> None:
        answers_file = temp_dir / "broken.json"
        answers_file.write_text("[{not json", encoding="utf-8")

        result = runner.invoke(app, ["submit", "exam-mixed", "u2", str(answers_file), "--store", str(state_file)])

        assert result.exit_code == 1
        assert "Error" in result.output
        assert "Traceback" not in result.output
