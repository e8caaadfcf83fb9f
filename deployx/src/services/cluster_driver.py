"""
Cluster driver - provisions clusters, applies deployments and verifies rollouts.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from kubernetes.client.rest import ApiException
from redis.exceptions import LockError
from urllib3.exceptions import HTTPError

from deployx.src.config import get_settings
from deployx.src.errors import ClusterError, RolloutError, RolloutTimeout
from deployx.src.k8s import (
    get_apps_api,
    get_core_api,
    ensure_namespace,
    reset_k8s_client,
    delete_deployment,
    delete_service,
    build_deployment,
    build_service,
    get_rollout_status,
)
from deployx.src.models.deployment import DeploymentSpec
from deployx.src.services.locks import resource_lock
from deployx.src.services.log_collector import collect_rollout_logs
from deployx.src.services.process import run_command

logger = logging.getLogger(__name__)
settings = get_settings()

RETRY_DELAY = 1.0

def target_namespace(spec: DeploymentSpec) -> str:
    return spec.namespace or settings.k8s_namespace

def cluster_name(spec: DeploymentSpec) -> str:
    return spec.cluster_name or settings.eks_cluster_name

def cluster_region(spec: DeploymentSpec) -> str:
    return spec.region or settings.aws_region

def is_transient(error: Exception) -> bool:
    """Network failures and 5xx answers may succeed on retry; 4xx never do."""
    if isinstance(error, ApiException):
        return error.status is None or error.status == 0 or error.status >= 500
    return isinstance(error, HTTPError)

def describe_api_error(error: Exception) -> str:
    if isinstance(error, ApiException):
        return f"HTTP {error.status}: {error.body or error.reason}"
    return str(error)

async def call_with_retry(
    description: str,
    func: Callable[..., Any],
    *args,
    sleep: Callable = asyncio.sleep,
    **kwargs,
) -> Any:
    """
    Call a blocking Kubernetes API function in a worker thread, retrying
    transient errors up to settings.transient_retries times.
    Raises RolloutError when the control plane rejects the call or retries run out.
    """
    attempt = 0
    while True:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (ApiException, HTTPError) as e:
            if not is_transient(e):
                raise RolloutError(
                    f"Control plane rejected {description}",
                    detail=describe_api_error(e),
                )
            if attempt >= settings.transient_retries:
                raise RolloutError(
                    f"{description} failed after {attempt + 1} attempts",
                    detail=describe_api_error(e),
                )
            attempt += 1
            logger.warning(f"Transient error during {description}, retrying: {e}")
            await sleep(RETRY_DELAY)

async def ensure_cluster(spec: DeploymentSpec):
    """Start the local cluster or create the EKS cluster when it does not exist yet."""
    if spec.is_local:
        status = await run_command([settings.minikube_bin, "status"])
        if status.ok:
            logger.info("Minikube is running")
        else:
            logger.info("Starting minikube...")
            started = await run_command(
                [settings.minikube_bin, "start"], timeout=settings.cluster_create_timeout
            )
            if not started.ok:
                raise ClusterError(
                    "minikube start failed", detail=started.excerpt(), returncode=started.returncode
                )
    else:
        name = cluster_name(spec)
        region = cluster_region(spec)
        existing = await run_command(
            [settings.eksctl_bin, "get", "cluster", "--name", name, "--region", region]
        )
        if existing.ok:
            logger.info(f"EKS cluster {name} exists in {region}")
        else:
            logger.info(f"Creating EKS cluster {name} in {region} (this takes a while)...")
            created = await run_command(
                [settings.eksctl_bin, "create", "cluster", "--name", name, "--region", region,
                 "--nodes", str(settings.eks_node_count)],
                timeout=settings.cluster_create_timeout,
            )
            if not created.ok:
                raise ClusterError(
                    f"eksctl create cluster {name} failed",
                    detail=created.excerpt(),
                    returncode=created.returncode,
                )

        kubeconfig = await run_command(
            [settings.aws_bin, "eks", "update-kubeconfig", "--name", name, "--region", region]
        )
        if not kubeconfig.ok:
            raise ClusterError(
                "aws eks update-kubeconfig failed",
                detail=kubeconfig.excerpt(),
                returncode=kubeconfig.returncode,
            )

    # Cached clients may point at the previous kubeconfig context
    reset_k8s_client()

async def load_image(spec: DeploymentSpec):
    """Copy the host image into the local cluster's runtime."""
    result = await run_command(
        [settings.minikube_bin, "image", "load", spec.local_image],
        timeout=settings.push_timeout,
    )
    if not result.ok:
        raise ClusterError(
            f"minikube image load failed for {spec.local_image}",
            detail=result.excerpt(),
            returncode=result.returncode,
        )
    logger.info(f"Loaded {spec.local_image} into minikube")

def create_or_conflict(kind: str, create: Callable, namespace: str, body, applied: Dict[str, Any]) -> bool:
    """
    Create `body`; returns False when it already exists.

    A create whose response was lost may have gone through, so a conflict
    after an earlier transient failure of this run is still our creation.
    Returns True in that case as well.
    """
    try:
        create(namespace=namespace, body=body, _request_timeout=settings.k8s_request_timeout)
    except (ApiException, HTTPError) as e:
        if isinstance(e, ApiException) and e.status == 409:
            if kind in applied.get("pending_create", ()):
                logger.warning(f"{kind} {body.metadata.name} was created by an earlier attempt")
                return True
            return False
        if is_transient(e):
            applied.setdefault("pending_create", set()).add(kind)
        raise
    return True

def upsert_deployment(body, namespace: str, applied: Dict[str, Any]):
    apps_v1 = get_apps_api()
    name = body.metadata.name

    if create_or_conflict("deployment", apps_v1.create_namespaced_deployment, namespace, body, applied):
        applied["deployment"] = "created"
        logger.info(f"Created deployment {name}")
        return

    # Keep what was running so a failed run can put it back
    if "previous_deployment" not in applied:
        applied["previous_deployment"] = apps_v1.read_namespaced_deployment(
            name=name, namespace=namespace, _request_timeout=settings.k8s_request_timeout,
        )
    apps_v1.patch_namespaced_deployment(
        name=name, namespace=namespace, body=body,
        _request_timeout=settings.k8s_request_timeout,
    )
    applied["deployment"] = "updated"
    logger.info(f"Updated deployment {name}")

def upsert_service(body, namespace: str, applied: Dict[str, Any]):
    core_v1 = get_core_api()
    name = body.metadata.name

    if create_or_conflict("service", core_v1.create_namespaced_service, namespace, body, applied):
        applied["service"] = "created"
        logger.info(f"Created service {name}")
        return

    core_v1.patch_namespaced_service(
        name=name, namespace=namespace, body=body,
        _request_timeout=settings.k8s_request_timeout,
    )
    applied["service"] = "updated"
    logger.info(f"Updated service {name}")

async def apply_deployment(
    spec: DeploymentSpec,
    image: str,
    applied: Optional[Dict[str, Any]] = None,
    sleep: Callable = asyncio.sleep,
) -> Dict[str, Any]:
    """
    Submit the Deployment and Service to the cluster.
    Apply operations on the same resource are serialized.

    `applied` is filled in as resources are created or updated, so the
    caller can revert a partially applied spec after a failure.
    """
    applied = {} if applied is None else applied
    namespace = target_namespace(spec)
    name = spec.deployment_name

    try:
        async with resource_lock(f"{namespace}/{name}"):
            if spec.is_local:
                await load_image(spec)

            await call_with_retry(f"namespace {namespace}", ensure_namespace, namespace, sleep=sleep)
            await call_with_retry(
                f"deployment {name}", upsert_deployment,
                build_deployment(spec, image, namespace), namespace, applied, sleep=sleep,
            )
            await call_with_retry(
                f"service {name}", upsert_service,
                build_service(spec, namespace), namespace, applied, sleep=sleep,
            )
    except LockError as e:
        raise RolloutError(f"Could not lock {namespace}/{name}", detail=str(e))

    logger.info(f"Applied {name} ({image}) to namespace {namespace}")
    return applied

async def revert_deployment(spec: DeploymentSpec, applied: Dict[str, Any]) -> List[str]:
    """
    Undo what one apply_deployment call did: delete created resources and
    restore the previous pod template of an updated deployment.
    Returns a description of each action taken.
    """
    namespace = target_namespace(spec)
    name = spec.deployment_name
    actions = []

    async with resource_lock(f"{namespace}/{name}"):
        if applied.get("service") == "created":
            await call_with_retry(f"delete service {name}", delete_service, name, namespace)
            actions.append(f"deleted service {name}")

        if applied.get("deployment") == "created":
            await call_with_retry(f"delete deployment {name}", delete_deployment, name, namespace)
            actions.append(f"deleted deployment {name}")
        elif applied.get("deployment") == "updated" and applied.get("previous_deployment"):
            previous = applied["previous_deployment"]
            await call_with_retry(
                f"restore deployment {name}",
                get_apps_api().patch_namespaced_deployment,
                name=name,
                namespace=namespace,
                body={"spec": {"replicas": previous.spec.replicas, "template": previous.spec.template}},
                _request_timeout=settings.k8s_request_timeout,
            )
            actions.append(f"restored previous template of deployment {name}")

    return actions

async def wait_for_rollout(
    spec: DeploymentSpec,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable = asyncio.sleep,
) -> Dict[str, int]:
    """
    Poll the deployment until every replica runs the new template and is available.
    Raises RolloutTimeout when `timeout` passes first (a poll is made at the
    deadline itself), RolloutError when the rollout fails or the control
    plane keeps erroring.
    Each status read runs in a worker thread bounded by settings.k8s_request_timeout.
    """
    timeout = settings.rollout_timeout if timeout is None else timeout
    poll_interval = settings.rollout_poll_interval if poll_interval is None else poll_interval
    namespace = target_namespace(spec)
    name = spec.deployment_name
    apps_v1 = get_apps_api()

    start_time = clock()
    transient_failures = 0
    polls = 0
    ready, desired = 0, spec.replicas

    while True:
        try:
            deployment = await asyncio.to_thread(
                apps_v1.read_namespaced_deployment,
                name=name,
                namespace=namespace,
                _request_timeout=settings.k8s_request_timeout,
            )
        except (ApiException, HTTPError) as e:
            if not is_transient(e) or transient_failures >= settings.transient_retries:
                raise RolloutError(
                    f"Could not read rollout status of {name}",
                    detail=describe_api_error(e),
                )
            transient_failures += 1
            logger.warning(f"Transient error checking rollout of {name}: {e}")
        else:
            polls += 1
            status, ready, desired = get_rollout_status(deployment)

            if status == "complete":
                logger.info(f"Rollout of {name} complete: {ready}/{desired} ready after {polls} polls")
                return {"ready": ready, "desired": desired, "polls": polls}

            if status == "failed":
                logs = await collect_rollout_logs(name, namespace=namespace)
                raise RolloutError(f"Rollout of {name} exceeded its progress deadline", detail=logs)

            logger.info(f"Rollout of {name} {status}: {ready}/{desired} ready")

        remaining = timeout - (clock() - start_time)
        if remaining <= 0:
            logger.error(f"Rollout of {name} timed out after {timeout}s")
            raise RolloutTimeout(
                f"Rollout of {name} not ready after {timeout}s",
                detail=f"{ready}/{desired} replicas ready",
            )
        await sleep(min(poll_interval, remaining))

async def delete_deployment_resources(spec: DeploymentSpec) -> Dict[str, bool]:
    """Delete the Service and Deployment. Missing resources are not an error."""
    namespace = target_namespace(spec)
    name = spec.deployment_name

    async with resource_lock(f"{namespace}/{name}"):
        service_deleted = await call_with_retry(f"delete service {name}", delete_service, name, namespace)
        deployment_deleted = await call_with_retry(
            f"delete deployment {name}", delete_deployment, name, namespace
        )

    return {"service": service_deleted, "deployment": deployment_deleted}

async def delete_cluster(spec: DeploymentSpec):
    """Delete the whole cluster. Only used on explicit teardown."""
    if spec.is_local:
        command = [settings.minikube_bin, "delete"]
    else:
        command = [settings.eksctl_bin, "delete", "cluster", "--name", cluster_name(spec),
                   "--region", cluster_region(spec), "--wait"]

    result = await run_command(command, timeout=settings.cluster_create_timeout)
    if not result.ok:
        raise ClusterError("Cluster deletion failed", detail=result.excerpt(), returncode=result.returncode)
    logger.info("Cluster deleted")
