from deployx.src.models.deployment import (
    ClusterTarget,
    ServiceType,
    FunctionSpec,
    DeploymentSpec,
)
from deployx.src.models.run import (
    RunStatus,
    InvalidTransition,
    StageResult,
    PipelineRun,
)

__all__ = [
    "ClusterTarget",
    "ServiceType",
    "FunctionSpec",
    "DeploymentSpec",
    "RunStatus",
    "InvalidTransition",
    "StageResult",
    "PipelineRun",
]
