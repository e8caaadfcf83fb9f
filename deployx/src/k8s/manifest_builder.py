"""
Kubernetes Deployment and Service builders for a deployment spec.
"""

from kubernetes import client
from typing import Dict, Tuple

from deployx.src.models.deployment import DeploymentSpec

MANAGED_BY = "deployx"

def build_labels(spec: DeploymentSpec) -> Dict[str, str]:
    return {
        "app": spec.deployment_name,
        "app.kubernetes.io/managed-by": MANAGED_BY,
    }

def build_deployment(spec: DeploymentSpec, image: str, namespace: str) -> client.V1Deployment:
    """
    Build a Kubernetes Deployment running `image` with the configured replica count.
    """
    labels = build_labels(spec)

    container = client.V1Container(
        name=spec.deployment_name,
        image=image,
        # Local clusters run images loaded from the host, never pulled
        image_pull_policy="IfNotPresent" if spec.is_local else None,
        ports=[client.V1ContainerPort(container_port=spec.container_port)],
    )

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=labels),
        spec=client.V1PodSpec(containers=[container]),
    )

    deployment_spec = client.V1DeploymentSpec(
        replicas=spec.replicas,
        selector=client.V1LabelSelector(match_labels={"app": spec.deployment_name}),
        template=template,
    )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(
            name=spec.deployment_name,
            namespace=namespace,
            labels=labels,
        ),
        spec=deployment_spec,
    )

def build_service(spec: DeploymentSpec, namespace: str) -> client.V1Service:
    """Build the Service exposing the deployment's container port."""
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=spec.deployment_name,
            namespace=namespace,
            labels=build_labels(spec),
        ),
        spec=client.V1ServiceSpec(
            type=spec.service_type.value,
            selector={"app": spec.deployment_name},
            ports=[
                client.V1ServicePort(
                    port=spec.container_port,
                    target_port=spec.container_port,
                    protocol="TCP",
                )
            ],
        ),
    )

def get_rollout_status(deployment: client.V1Deployment) -> Tuple[str, int, int]:
    """
    Determine rollout status from a Kubernetes Deployment object.
    Returns (status, ready, desired) where status is
    'pending', 'progressing', 'complete' or 'failed'.
    """
    desired = deployment.spec.replicas if deployment.spec and deployment.spec.replicas is not None else 1
    status = deployment.status

    if status is None:
        return "pending", 0, desired

    for condition in status.conditions or []:
        if condition.type == "Progressing" and condition.reason == "ProgressDeadlineExceeded":
            return "failed", status.ready_replicas or 0, desired

    ready = status.ready_replicas or 0
    updated = status.updated_replicas or 0
    available = status.available_replicas or 0
    total = status.replicas or 0

    # Status is stale until the controller observes the new generation
    generation = deployment.metadata.generation if deployment.metadata else None
    if generation is not None and status.observed_generation is not None:
        if status.observed_generation < generation:
            return "progressing", ready, desired

    # Same conditions as `kubectl rollout status`: old pods still count
    # towards ready_replicas while a rolling update is under way
    if updated >= desired and total <= updated and available >= updated:
        return "complete", ready, desired

    if status.replicas:
        return "progressing", ready, desired

    return "pending", ready, desired
