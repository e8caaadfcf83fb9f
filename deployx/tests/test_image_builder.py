"""Tests for image build and push."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from conftest import ok, failed
from deployx.src.errors import BuildFailed, PushFailed
from deployx.src.models.deployment import DeploymentSpec
from deployx.src.services.image_builder import (
    build_and_push,
    build_command,
    build_image,
    ecr_region,
    image_reference,
    push_image,
)

IMAGE_ID = "sha256:" + "a" * 64
DIGEST = "sha256:" + "b" * 64
ECR = "123456789012.dkr.ecr.eu-west-1.amazonaws.com"

@pytest.fixture
def registry_spec():
    return DeploymentSpec(
        imageName="jupyter-notebook",
        registryURI="registry.example.com/team",
        replicas=1,
        containerPort=8888,
    )

def fake_docker(args, **kwargs):
    """Deterministic docker: same inputs, same ids."""
    if args[1] == "build":
        return ok("Successfully built")
    if args[1:3] == ["image", "inspect"]:
        return ok(IMAGE_ID + "\n")
    if args[1] == "push":
        return ok(f"The push refers to repository\nlatest: digest: {DIGEST} size: 1573\n")
    if args[1] == "login":
        return ok("Login Succeeded")
    if args[0] == "aws":
        return ok("ecr-token\n")
    raise AssertionError(f"unexpected command {args}")

def test_build_command_tags_local_and_remote(registry_spec):
    command = build_command(registry_spec)
    assert command[:2] == ["docker", "build"]
    assert "jupyter-notebook:latest" in command
    assert "registry.example.com/team/jupyter-notebook:latest" in command
    assert command[-1] == "."

def test_build_returns_image_id(registry_spec):
    with patch("deployx.src.services.image_builder.run_command", AsyncMock(side_effect=fake_docker)):
        assert asyncio.run(build_image(registry_spec)) == IMAGE_ID

def test_build_failure_carries_stderr(registry_spec):
    run_command = AsyncMock(return_value=failed("COPY failed: file not found", returncode=1))
    with patch("deployx.src.services.image_builder.run_command", run_command):
        with pytest.raises(BuildFailed, match="COPY failed") as exc_info:
            asyncio.run(build_image(registry_spec))

    assert exc_info.value.returncode == 1
    assert exc_info.value.exit_code == 2

def test_push_parses_digest(registry_spec):
    with patch("deployx.src.services.image_builder.run_command", AsyncMock(side_effect=fake_docker)):
        assert asyncio.run(push_image(registry_spec)) == DIGEST

def test_push_falls_back_to_inspect(registry_spec):
    def old_docker(args, **kwargs):
        if args[1] == "push":
            return ok("Pushed\n")
        return ok(f"registry.example.com/team/jupyter-notebook@{DIGEST}\n")

    with patch("deployx.src.services.image_builder.run_command", AsyncMock(side_effect=old_docker)):
        assert asyncio.run(push_image(registry_spec)) == DIGEST

def test_push_failure(registry_spec):
    run_command = AsyncMock(return_value=failed("denied: requested access to the resource is denied"))
    with patch("deployx.src.services.image_builder.run_command", run_command):
        with pytest.raises(PushFailed, match="denied"):
            asyncio.run(push_image(registry_spec))

def test_push_without_registry(notebook_spec):
    with pytest.raises(PushFailed, match="registryURI"):
        asyncio.run(push_image(notebook_spec))

def test_push_logs_into_ecr_first():
    spec = DeploymentSpec(imageName="web", registryURI=ECR, replicas=1, containerPort=80)
    run_command = AsyncMock(side_effect=fake_docker)

    with patch("deployx.src.services.image_builder.run_command", run_command):
        asyncio.run(push_image(spec))

    calls = [c.args[0] for c in run_command.call_args_list]
    assert calls[0] == ["aws", "ecr", "get-login-password", "--region", "eu-west-1"]
    assert calls[1][:2] == ["docker", "login"]
    assert run_command.call_args_list[1].kwargs["input"] == "ecr-token"
    assert calls[2] == ["docker", "push", f"{ECR}/web:latest"]

def test_ecr_region():
    assert ecr_region(ECR) == "eu-west-1"
    assert ecr_region("docker.io/library") is None

def test_build_and_push_is_idempotent(registry_spec):
    """Same source and tool output give the same digest on every run."""
    with patch("deployx.src.services.image_builder.run_command", AsyncMock(side_effect=fake_docker)):
        first = asyncio.run(build_and_push(registry_spec))
        second = asyncio.run(build_and_push(registry_spec))

    assert first == second == DIGEST

def test_build_and_push_without_registry_returns_image_id(notebook_spec):
    with patch("deployx.src.services.image_builder.run_command", AsyncMock(side_effect=fake_docker)):
        assert asyncio.run(build_and_push(notebook_spec)) == IMAGE_ID

def test_image_reference(notebook_spec):
    cloud = DeploymentSpec(
        imageName="web", registryURI=ECR, clusterTarget="cloud", replicas=1, containerPort=80,
    )
    assert image_reference(notebook_spec, None) == "jupyter-notebook:latest"
    assert image_reference(cloud, DIGEST) == f"{ECR}/web@{DIGEST}"
    assert image_reference(cloud, None) == f"{ECR}/web:latest"
