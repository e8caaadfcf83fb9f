"""
Container image build and registry push.
"""

import logging
import re
from typing import List, Optional

from deployx.src.config import get_settings
from deployx.src.errors import BuildFailed, PushFailed
from deployx.src.models.deployment import DeploymentSpec
from deployx.src.services.process import run_command

logger = logging.getLogger(__name__)
settings = get_settings()

DIGEST_PATTERN = re.compile(r"digest:\s*(sha256:[0-9a-f]{64})")
ECR_HOST_PATTERN = re.compile(r"^\d+\.dkr\.ecr\.([a-z0-9-]+)\.amazonaws\.com")

def build_command(spec: DeploymentSpec) -> List[str]:
    """Build the `docker build` invocation for a spec."""
    command = [settings.docker_bin, "build", "-t", spec.local_image]

    if spec.remote_image:
        command += ["-t", spec.remote_image]

    if spec.dockerfile:
        command += ["-f", spec.dockerfile]

    command.append(spec.build_context)
    return command

async def build_image(spec: DeploymentSpec) -> str:
    """
    Build the image and return its content-addressed id.
    Raises BuildFailed with the tool's stderr.
    """
    result = await run_command(build_command(spec), timeout=settings.build_timeout)
    if not result.ok:
        raise BuildFailed(
            f"docker build failed for {spec.local_image}",
            detail=result.excerpt(),
            returncode=result.returncode,
        )

    inspect = await run_command(
        [settings.docker_bin, "image", "inspect", "--format", "{{.Id}}", spec.local_image]
    )
    if not inspect.ok or not inspect.stdout.strip():
        raise BuildFailed(
            f"Could not resolve image id for {spec.local_image}",
            detail=inspect.excerpt(),
            returncode=inspect.returncode,
        )

    image_id = inspect.stdout.strip()
    logger.info(f"Built {spec.local_image} ({image_id})")
    return image_id

def ecr_region(registry_uri: str) -> Optional[str]:
    """Return the AWS region of an ECR registry host, None for other registries."""
    match = ECR_HOST_PATTERN.match(registry_uri)
    return match.group(1) if match else None

async def login_to_ecr(registry_uri: str, region: str):
    """Login to ECR registry."""
    registry_host = registry_uri.split("/")[0]
    logger.info(f"Logging into ECR {registry_host}...")

    token = await run_command(
        [settings.aws_bin, "ecr", "get-login-password", "--region", region]
    )
    if not token.ok:
        raise PushFailed(
            "ECR login token request failed",
            detail=token.excerpt(),
            returncode=token.returncode,
        )

    login = await run_command(
        [settings.docker_bin, "login", "--username", "AWS", "--password-stdin", registry_host],
        input=token.stdout.strip(),
    )
    if not login.ok:
        raise PushFailed(
            f"docker login to {registry_host} failed",
            detail=login.stderr.strip(),
            returncode=login.returncode,
        )

async def push_image(spec: DeploymentSpec) -> str:
    """
    Push the image to the configured registry and return the repository digest.
    Raises PushFailed with the tool's stderr.
    """
    if not spec.remote_image:
        raise PushFailed(f"No registryURI configured for {spec.image_name}")

    region = ecr_region(spec.registry_uri)
    if region:
        await login_to_ecr(spec.registry_uri, region)

    result = await run_command(
        [settings.docker_bin, "push", spec.remote_image], timeout=settings.push_timeout
    )
    if not result.ok:
        raise PushFailed(
            f"docker push failed for {spec.remote_image}",
            detail=result.excerpt(),
            returncode=result.returncode,
        )

    match = DIGEST_PATTERN.search(result.stdout)
    if match:
        digest = match.group(1)
    else:
        # Older clients do not print the digest; ask the daemon
        inspect = await run_command(
            [settings.docker_bin, "image", "inspect", "--format",
             "{{index .RepoDigests 0}}", spec.remote_image]
        )
        if not inspect.ok or "@" not in inspect.stdout:
            raise PushFailed(
                f"Could not resolve pushed digest for {spec.remote_image}",
                detail=inspect.excerpt(),
                returncode=inspect.returncode,
            )
        digest = inspect.stdout.strip().split("@", 1)[1]

    logger.info(f"Pushed {spec.remote_image} ({digest})")
    return digest

async def build_and_push(spec: DeploymentSpec) -> str:
    """Build, then push when a registry is configured. Returns the resolved digest."""
    image_id = await build_image(spec)
    if not spec.remote_image:
        return image_id
    return await push_image(spec)

def image_reference(spec: DeploymentSpec, digest: Optional[str]) -> str:
    """Image reference the cluster should run."""
    if spec.is_local or not spec.remote_repository:
        return spec.local_image
    if digest and digest.startswith("sha256:"):
        return f"{spec.remote_repository}@{digest}"
    return spec.remote_image
