"""
Report pipeline run and stage status to the run-scoped log file.
"""

import logging
from pathlib import Path
from typing import Optional

from deployx.src.config import get_settings
from deployx.src.models.run import PipelineRun, StageResult

logger = logging.getLogger(__name__)
settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def run_log_path(run: PipelineRun, log_dir: Optional[str] = None) -> Path:
    return Path(log_dir or settings.log_dir) / f"{run.id}.log"

def run_summary_path(run: PipelineRun, log_dir: Optional[str] = None) -> Path:
    return Path(log_dir or settings.log_dir) / f"{run.id}.json"

def open_run_log(run: PipelineRun, log_dir: Optional[str] = None) -> logging.Handler:
    """Attach a file handler capturing every deployx log record of this run."""
    path = run_log_path(run, log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, mode="w")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger("deployx")
    if package_logger.getEffectiveLevel() > logging.INFO:
        package_logger.setLevel(logging.INFO)
    package_logger.addHandler(handler)
    logger.info(f"Run {run.id} logging to {path}")
    return handler

def close_run_log(handler: logging.Handler):
    logging.getLogger("deployx").removeHandler(handler)
    handler.close()

def update_run_status(run: PipelineRun, log_dir: Optional[str] = None):
    """Log run status; write the JSON summary once the run is terminal."""
    logger.info(f"Run {run.id} status: {run.status.value}")

    if run.is_terminal:
        path = run_summary_path(run, log_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(run.model_dump_json(indent=2))
        except OSError as e:
            logger.error(f"Failed to write run summary {path}: {e}")

def update_stage_status(run: PipelineRun, result: StageResult):
    """Log a finished stage."""
    outcome = "succeeded" if result.succeeded else f"failed (exit {result.exit_code})"
    logger.info(
        f"Run {run.id} stage {result.stage_name} {outcome} in {result.duration_ms}ms"
    )
    if result.log_excerpt:
        logger.debug(f"{result.stage_name} output:\n{result.log_excerpt}")

def format_summary(run: PipelineRun) -> str:
    """Human-readable run summary for the CLI."""
    lines = [f"Run {run.id}: {run.status.value}"]
    for result in run.stage_results:
        mark = "ok" if result.succeeded else f"exit {result.exit_code}"
        lines.append(f"  {result.stage_name:<15} {mark:<8} {result.duration_ms}ms")
    if run.failed_stage:
        lines.append(f"Failed at {run.failed_stage}: {run.failure_reason}: {run.error_message}")
    return "\n".join(lines)
