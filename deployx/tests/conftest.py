"""Shared fixtures for deployx tests."""

import pytest
from unittest.mock import MagicMock, patch
from kubernetes import client

from deployx.src.config import get_settings
from deployx.src.models.deployment import DeploymentSpec
from deployx.src.services.process import CommandResult

@pytest.fixture(autouse=True)
def no_tool_checks(monkeypatch):
    monkeypatch.setattr(get_settings(), "check_tools", False)
    monkeypatch.setattr(get_settings(), "redis_url", "")

@pytest.fixture
def notebook_spec():
    return DeploymentSpec(
        imageName="jupyter-notebook",
        replicas=1,
        containerPort=8888,
        clusterTarget="local",
    )

@pytest.fixture
def k8s_apis():
    """Patch every place the Kubernetes API clients are looked up."""
    apps = MagicMock(name="AppsV1Api")
    core = MagicMock(name="CoreV1Api")
    core.list_namespaced_pod.return_value = client.V1PodList(items=[])

    with patch("deployx.src.k8s.client.get_apps_api", return_value=apps), \
         patch("deployx.src.k8s.client.get_core_api", return_value=core), \
         patch("deployx.src.services.cluster_driver.get_apps_api", return_value=apps), \
         patch("deployx.src.services.cluster_driver.get_core_api", return_value=core), \
         patch("deployx.src.services.log_collector.get_core_api", return_value=core):
        yield apps, core

def ok(stdout: str = "", args=None) -> CommandResult:
    return CommandResult(args or [], 0, stdout, "", 1)

def failed(stderr: str, returncode: int = 1, args=None) -> CommandResult:
    return CommandResult(args or [], returncode, "", stderr, 1)

def make_deployment(ready: int, replicas: int = 1, generation: int = 1,
                    observed: int = 1, conditions=None, updated: int = None,
                    available: int = None, total: int = None) -> client.V1Deployment:
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name="jupyter-notebook", generation=generation),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={"app": "jupyter-notebook"}),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(
            replicas=replicas if total is None else total,
            ready_replicas=ready,
            updated_replicas=ready if updated is None else updated,
            available_replicas=ready if available is None else available,
            observed_generation=observed,
            conditions=conditions,
        ),
    )

class FakeClock:
    """Monotonic clock advanced only by the paired sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
