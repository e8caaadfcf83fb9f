"""
Pipeline run models.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from deployx.src.models.deployment import DeploymentSpec

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class InvalidTransition(RuntimeError):
    pass

_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING},
    RunStatus.RUNNING: {RunStatus.SUCCEEDED, RunStatus.FAILED},
    RunStatus.SUCCEEDED: set(),
    RunStatus.FAILED: set(),
}

class StageResult(BaseModel):
    stage_name: str
    exit_code: int
    duration_ms: int
    log_excerpt: str = ""

    class Config:
        frozen = True

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

class PipelineRun(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    spec: DeploymentSpec
    stage_results: List[StageResult] = []
    status: RunStatus = RunStatus.PENDING
    current_stage: Optional[str] = None
    failed_stage: Optional[str] = None
    failure_reason: Optional[str] = None
    error_message: Optional[str] = None
    exit_code: int = 0
    image_id: Optional[str] = None
    image_digest: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def _transition(self, status: RunStatus):
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Run {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self):
        self._transition(RunStatus.RUNNING)
        self.started_at = datetime.utcnow()

    def succeed(self):
        self._transition(RunStatus.SUCCEEDED)
        self.finished_at = datetime.utcnow()

    def fail(self, stage: str, reason: str, message: str, exit_code: int):
        self._transition(RunStatus.FAILED)
        self.failed_stage = stage
        self.failure_reason = reason
        self.error_message = message
        self.exit_code = exit_code
        self.finished_at = datetime.utcnow()

    def record(self, result: StageResult):
        """Append a stage result. Results are never rewritten."""
        self.stage_results.append(result)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.SUCCEEDED, RunStatus.FAILED)
