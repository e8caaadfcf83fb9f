"""
Deployment error taxonomy.

Every failure a stage can raise derives from DeployError so the executor
can record it on the run and map it to a CLI exit code.
"""

from typing import Optional

class DeployError(Exception):
    """Base class for pipeline failures."""

    exit_code = 1

    def __init__(self, message: str, detail: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.returncode = returncode

    @property
    def reason(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message

class ValidationError(DeployError):
    """Raised when a deployment descriptor is missing or has an invalid field."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

class BuildFailed(DeployError):
    exit_code = 2

class PushFailed(DeployError):
    exit_code = 3

class ClusterError(DeployError):
    """Cluster provisioning or image loading failed."""
    exit_code = 4

class RolloutError(DeployError):
    """Control plane rejected the deployment or the rollout failed."""
    exit_code = 4

class RolloutTimeout(DeployError):
    exit_code = 4

class PackagingError(DeployError):
    exit_code = 5

class DeployAPIError(DeployError):
    exit_code = 5

class Cancelled(DeployError):
    exit_code = 130
