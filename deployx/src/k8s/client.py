"""
Kubernetes client initialization and utilities.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from typing import Optional
import logging

from deployx.src.config import get_settings
from deployx.src.errors import ClusterError

logger = logging.getLogger(__name__)
settings = get_settings()

_api_client = None
_apps_v1 = None
_core_v1 = None

def init_k8s_client(context: Optional[str] = None) -> bool:
    """Initialize Kubernetes client."""
    global _api_client, _apps_v1, _core_v1

    context = context or settings.kube_context or None

    try:
        if settings.k8s_in_cluster:
            # Running inside Kubernetes
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        else:
            # Running locally (minikube, EKS via update-kubeconfig, etc.)
            config.load_kube_config(context=context)
            logger.info(f"Loaded local Kubernetes config (context: {context or 'current'})")

        _api_client = client.ApiClient()
        _apps_v1 = client.AppsV1Api(_api_client)
        _core_v1 = client.CoreV1Api(_api_client)

        logger.info("Kubernetes client initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Kubernetes client: {e}")
        return False

def reset_k8s_client():
    """Drop cached clients, e.g. after the kubeconfig context changed."""
    global _api_client, _apps_v1, _core_v1
    _api_client = None
    _apps_v1 = None
    _core_v1 = None

def _require(api, kind: str):
    if api is None:
        raise ClusterError(f"Kubernetes {kind} client is not available", detail="check kubeconfig or cluster access")
    return api

def get_apps_api() -> client.AppsV1Api:
    """Get AppsV1 API client for Deployment operations."""
    global _apps_v1
    if _apps_v1 is None:
        init_k8s_client()
    return _require(_apps_v1, "apps/v1")

def get_core_api() -> client.CoreV1Api:
    """Get CoreV1 API client for Service, Pod and Namespace operations."""
    global _core_v1
    if _core_v1 is None:
        init_k8s_client()
    return _require(_core_v1, "core/v1")

def ensure_namespace(namespace: Optional[str] = None):
    """Ensure the target namespace exists."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        core_v1.read_namespace(name=namespace, _request_timeout=settings.k8s_request_timeout)
    except ApiException as e:
        if e.status == 404:
            body = client.V1Namespace(
                metadata=client.V1ObjectMeta(name=namespace)
            )
            core_v1.create_namespace(body=body, _request_timeout=settings.k8s_request_timeout)
            logger.info(f"Created namespace '{namespace}'")
        else:
            raise

def get_pod_logs(pod_name: str, namespace: Optional[str] = None, tail_lines: int = 50) -> str:
    """Get logs from a pod."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        return core_v1.read_namespaced_pod_log(
            name=pod_name,
            namespace=namespace,
            tail_lines=tail_lines,
            _request_timeout=settings.k8s_request_timeout,
        )
    except ApiException as e:
        logger.error(f"Failed to get logs for pod {pod_name}: {e}")
        return f"Error fetching logs: {e.reason}"

def delete_deployment(name: str, namespace: Optional[str] = None) -> bool:
    """Delete a deployment and its pods. Returns False if it did not exist."""
    namespace = namespace or settings.k8s_namespace
    apps_v1 = get_apps_api()

    try:
        apps_v1.delete_namespaced_deployment(
            name=name,
            namespace=namespace,
            body=client.V1DeleteOptions(
                propagation_policy="Foreground"
            ),
            _request_timeout=settings.k8s_request_timeout,
        )
        logger.info(f"Deleted deployment {name}")
        return True
    except ApiException as e:
        if e.status == 404:
            return False
        raise

def delete_service(name: str, namespace: Optional[str] = None) -> bool:
    """Delete a service. Returns False if it did not exist."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        core_v1.delete_namespaced_service(
            name=name, namespace=namespace, _request_timeout=settings.k8s_request_timeout
        )
        logger.info(f"Deleted service {name}")
        return True
    except ApiException as e:
        if e.status == 404:
            return False
        raise
