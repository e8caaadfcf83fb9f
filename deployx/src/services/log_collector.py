"""
Collect logs from a deployment's pods for failed rollouts.
"""

import asyncio
import logging
from typing import List, Optional
from kubernetes.client.rest import ApiException

from deployx.src.k8s.client import get_core_api, get_pod_logs
from deployx.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

def describe_waiting(pod) -> List[str]:
    """Waiting reasons of a pod's containers, e.g. ErrImagePull."""
    reasons = []
    for container_status in (pod.status.container_statuses or []) if pod.status else []:
        waiting = container_status.state.waiting if container_status.state else None
        if waiting and waiting.reason:
            reasons.append(f"{pod.metadata.name}/{container_status.name}: {waiting.reason}"
                           + (f" ({waiting.message})" if waiting.message else ""))
    return reasons

async def collect_rollout_logs(app_name: str, namespace: Optional[str] = None,
                               tail_lines: int = 50) -> str:
    """Collect waiting reasons and log tail of the deployment's first unready pod."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        pods = await asyncio.to_thread(
            core_v1.list_namespaced_pod,
            namespace=namespace,
            label_selector=f"app={app_name}",
            _request_timeout=settings.k8s_request_timeout,
        )
    except ApiException as e:
        logger.error(f"Failed to list pods for {app_name}: {e}")
        return f"Error collecting logs: {e.reason}"

    if not pods.items:
        return "No pods found for deployment"

    lines = []
    for pod in pods.items:
        lines.extend(describe_waiting(pod))

    unready = [pod for pod in pods.items if describe_waiting(pod)] or pods.items
    logs = await asyncio.to_thread(
        get_pod_logs, unready[0].metadata.name, namespace=namespace, tail_lines=tail_lines,
    )
    if logs:
        lines.append(logs.strip())

    return "\n".join(lines)
