import json

from typer.testing import CliRunner

from xctimeline.cli import app

runner = CliRunner()


def test_timeline_command_prints_and_writes_json(tmp_path, failure_bundle) -> None:
    output = tmp_path / "out" / "timeline.json"

    result = runner.invoke(
        app,
        [
            "timeline",
            "--bundle", str(failure_bundle),
            "--test-id", "Suite/testExample()",
            "--backend", "database",
            "--output", str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Parent Step" in result.output
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["runs"][0]["label"] == "Run 1"


def test_timeline_command_reports_missing_test(failure_bundle) -> None:
    result = runner.invoke(
        app,
        ["timeline", "--bundle", str(failure_bundle), "--test-id", "Suite/nope()", "--backend", "database"],
    )

    assert result.exit_code == 1
    assert "Error" in result.output


def test_batch_command_writes_one_file_per_test(tmp_path, failure_bundle) -> None:
    output_dir = tmp_path / "batch"

    result = runner.invoke(
        app,
        [
            "batch",
            "--bundle", str(failure_bundle),
            "--test-id", "Suite/testExample()",
            "--backend", "database",
            "--workers", "2",
            "--output-dir", str(output_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    assert (output_dir / "Suite_testExample.json").exists()
