from deployx.src.k8s.client import (
    init_k8s_client,
    reset_k8s_client,
    get_apps_api,
    get_core_api,
    ensure_namespace,
    get_pod_logs,
    delete_deployment,
    delete_service,
)
from deployx.src.k8s.manifest_builder import (
    build_deployment,
    build_service,
    build_labels,
    get_rollout_status,
)

__all__ = [
    "init_k8s_client",
    "reset_k8s_client",
    "get_apps_api",
    "get_core_api",
    "ensure_namespace",
    "get_pod_logs",
    "delete_deployment",
    "delete_service",
    "build_deployment",
    "build_service",
    "build_labels",
    "get_rollout_status",
]
