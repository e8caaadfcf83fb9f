"""
Pipeline executor - drives a deployment run through its stages.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from deployx.src.config import get_settings
from deployx.src.errors import (
    BuildFailed,
    Cancelled,
    ClusterError,
    DeployAPIError,
    DeployError,
    PushFailed,
    RolloutError,
    ValidationError,
)
from deployx.src.models.deployment import DeploymentSpec
from deployx.src.models.run import PipelineRun, StageResult
from deployx.src.services.cluster_driver import (
    apply_deployment,
    ensure_cluster,
    revert_deployment,
    wait_for_rollout,
)
from deployx.src.services.function_deployer import deploy_function
from deployx.src.services.image_builder import (
    build_image,
    ecr_region,
    image_reference,
    push_image,
)
from deployx.src.services.manifest_loader import validate_deployment_spec
from deployx.src.services.process import ensure_tools
from deployx.src.services.status_reporter import (
    close_run_log,
    open_run_log,
    update_run_status,
    update_stage_status,
)

logger = logging.getLogger(__name__)
settings = get_settings()

STAGE_VALIDATE = "validate"
STAGE_BUILD = "build"
STAGE_PUSH = "push"
STAGE_CLUSTER_APPLY = "clusterApply"
STAGE_ROLLOUT_VERIFY = "rolloutVerify"
STAGE_FUNCTION_DEPLOY = "functionDeploy"
STAGE_CLEANUP = "cleanup"

EXCERPT_LIMIT = 2000

# Error raised for an unexpected exception inside each stage
STAGE_ERRORS = {
    STAGE_BUILD: BuildFailed,
    STAGE_PUSH: PushFailed,
    STAGE_CLUSTER_APPLY: ClusterError,
    STAGE_ROLLOUT_VERIFY: RolloutError,
    STAGE_FUNCTION_DEPLOY: DeployAPIError,
}

Stage = Tuple[str, Callable[[], Awaitable[str]]]

def required_tools(spec: DeploymentSpec, create_cluster: bool = False) -> List[str]:
    """Binaries a run of this spec will invoke."""
    tools = [settings.docker_bin]
    if spec.is_local:
        tools.append(settings.minikube_bin)
    elif create_cluster:
        tools += [settings.eksctl_bin, settings.aws_bin]
    if spec.registry_uri and ecr_region(spec.registry_uri) and settings.aws_bin not in tools:
        tools.append(settings.aws_bin)
    return tools

def wrap_unexpected(stage: str, error: Exception) -> DeployError:
    if stage == STAGE_VALIDATE:
        return ValidationError("spec", f"Unexpected error in {stage}: {error}")
    return STAGE_ERRORS[stage](f"Unexpected error in {stage}", detail=str(error))

class PipelineExecution:
    """
    One pipeline run: the stage plan plus what earlier stages produced
    for later ones (image digest, applied resources).
    """

    def __init__(
        self,
        run: PipelineRun,
        rollout_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        create_cluster: bool = False,
        log_dir: Optional[str] = None,
    ):
        self.run = run
        self.spec = run.spec
        self.rollout_timeout = rollout_timeout
        self.poll_interval = poll_interval
        self.create_cluster = create_cluster
        self.log_dir = log_dir
        self.applied: Dict[str, Any] = {}

    def stages(self) -> List[Stage]:
        stages = [
            (STAGE_VALIDATE, self.validate),
            (STAGE_BUILD, self.build),
            (STAGE_PUSH, self.push),
            (STAGE_CLUSTER_APPLY, self.cluster_apply),
            (STAGE_ROLLOUT_VERIFY, self.rollout_verify),
        ]
        if self.spec.function is not None:
            stages.append((STAGE_FUNCTION_DEPLOY, self.function_deploy))
        return stages

    async def validate(self) -> str:
        validate_deployment_spec(self.spec)
        if settings.check_tools:
            ensure_tools(required_tools(self.spec, self.create_cluster))
        return f"{self.spec.deployment_name}: {self.spec.replicas} replica(s) on {self.spec.cluster_target.value}"

    async def build(self) -> str:
        self.run.image_id = await build_image(self.spec)
        return self.run.image_id

    async def push(self) -> str:
        if not self.spec.remote_image:
            return "skipped: no registryURI configured"
        self.run.image_digest = await push_image(self.spec)
        return f"{self.spec.remote_image} {self.run.image_digest}"

    async def cluster_apply(self) -> str:
        if self.create_cluster:
            await ensure_cluster(self.spec)
        image = image_reference(self.spec, self.run.image_digest)
        await apply_deployment(self.spec, image, applied=self.applied)
        return f"applied {self.spec.deployment_name} with {image}"

    async def rollout_verify(self) -> str:
        status = await wait_for_rollout(
            self.spec,
            timeout=self.rollout_timeout,
            poll_interval=self.poll_interval,
        )
        return f"{status['ready']}/{status['desired']} replicas ready after {status['polls']} polls"

    async def function_deploy(self) -> str:
        function = self.spec.function
        result = await asyncio.to_thread(
            deploy_function,
            function.artifact_path,
            function.function_name,
            region=function.region or self.spec.region,
        )
        return f"{function.function_name} version {result['version']}"

    async def run_stage(self, name: str, stage: Callable[[], Awaitable[str]]):
        """Run one stage and append its result, whatever the outcome."""
        logger.info(f"Executing stage {name}")
        self.run.current_stage = name
        start_time = time.monotonic()

        def finish(exit_code: int, excerpt: str):
            result = StageResult(
                stage_name=name,
                exit_code=exit_code,
                duration_ms=int((time.monotonic() - start_time) * 1000),
                log_excerpt=excerpt[-EXCERPT_LIMIT:],
            )
            self.run.record(result)
            update_stage_status(self.run, result)

        try:
            excerpt = await stage()
        except DeployError as e:
            finish(e.returncode or e.exit_code, str(e))
            raise
        except asyncio.CancelledError:
            finish(Cancelled.exit_code, "Cancelled")
            raise
        except Exception as e:
            logger.exception(f"Stage {name} failed with exception")
            error = wrap_unexpected(name, e)
            finish(error.exit_code, str(error))
            raise error from e

        finish(0, excerpt or "")

    async def cleanup(self):
        """
        Best-effort revert of what this run applied.
        Never raises and never changes the run status.
        """
        start_time = time.monotonic()
        exit_code = 0

        try:
            if self.applied:
                actions = await revert_deployment(self.spec, self.applied)
                excerpt = "\n".join(actions) or "nothing to revert"
            else:
                excerpt = "nothing to clean up"
        except Exception as e:
            logger.error(f"Cleanup of run {self.run.id} failed: {e}")
            exit_code = getattr(e, "exit_code", 1)
            excerpt = f"cleanup failed: {e}"

        result = StageResult(
            stage_name=STAGE_CLEANUP,
            exit_code=exit_code,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            log_excerpt=excerpt[-EXCERPT_LIMIT:],
        )
        self.run.record(result)
        update_stage_status(self.run, result)

    async def execute(self) -> PipelineRun:
        run = self.run
        logger.info(
            f"Starting pipeline run {run.id} for {self.spec.deployment_name} "
            f"({self.spec.cluster_target.value})"
        )
        run.start()
        update_run_status(run, self.log_dir)

        current = None
        try:
            for name, stage in self.stages():
                current = name
                await self.run_stage(name, stage)
        except DeployError as e:
            logger.error(f"Stage {current} failed: {e}")
            run.fail(current, e.reason, str(e), e.exit_code)
            await self.cleanup()
        except asyncio.CancelledError:
            logger.warning(f"Run {run.id} cancelled during {current}")
            run.fail(current, Cancelled.__name__, f"Cancelled during {current}", Cancelled.exit_code)
            await self.cleanup()
            update_run_status(run, self.log_dir)
            raise
        else:
            run.succeed()

        update_run_status(run, self.log_dir)
        logger.info(f"Pipeline run {run.id} finished with status: {run.status.value}")
        return run

async def execute_pipeline(
    spec: DeploymentSpec,
    run: Optional[PipelineRun] = None,
    rollout_timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    create_cluster: bool = False,
    log_dir: Optional[str] = None,
) -> PipelineRun:
    """
    Execute a deployment pipeline run.
    Returns the terminal run; on cancellation the run is marked failed
    with reason Cancelled before the cancellation propagates.
    """
    run = run or PipelineRun(spec=spec)
    execution = PipelineExecution(
        run,
        rollout_timeout=rollout_timeout,
        poll_interval=poll_interval,
        create_cluster=create_cluster,
        log_dir=log_dir,
    )

    handler = open_run_log(run, log_dir)
    try:
        return await execution.execute()
    finally:
        close_run_log(handler)
