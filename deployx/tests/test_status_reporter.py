"""Tests for run logs and summaries."""

import json
import logging

from deployx.src.models.run import PipelineRun, StageResult
from deployx.src.services.status_reporter import (
    close_run_log,
    format_summary,
    open_run_log,
    run_log_path,
    update_run_status,
)

def test_summary_written_only_when_terminal(notebook_spec, tmp_path):
    run = PipelineRun(spec=notebook_spec)
    run.start()
    update_run_status(run, str(tmp_path))
    assert not (tmp_path / f"{run.id}.json").exists()

    run.succeed()
    update_run_status(run, str(tmp_path))
    summary = json.loads((tmp_path / f"{run.id}.json").read_text())
    assert summary["id"] == str(run.id)
    assert summary["status"] == "succeeded"

def test_run_log_captures_package_records(notebook_spec, tmp_path):
    run = PipelineRun(spec=notebook_spec)
    handler = open_run_log(run, str(tmp_path))
    try:
        logging.getLogger("deployx.src.services.executor").info("Executing stage build")
        logging.getLogger("unrelated").warning("not ours")
    finally:
        close_run_log(handler)

    text = run_log_path(run, str(tmp_path)).read_text()
    assert "Executing stage build" in text
    assert "not ours" not in text

def test_format_summary(notebook_spec):
    run = PipelineRun(spec=notebook_spec)
    run.start()
    run.record(StageResult(stage_name="validate", exit_code=0, duration_ms=3))
    run.record(StageResult(stage_name="build", exit_code=1, duration_ms=1200, log_excerpt="boom"))
    run.fail("build", "BuildFailed", "docker build failed: boom", 2)

    summary = format_summary(run)
    assert f"Run {run.id}: failed" in summary
    assert "validate" in summary and "exit 1" in summary
    assert summary.endswith("Failed at build: BuildFailed: docker build failed: boom")
