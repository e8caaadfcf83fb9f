"""
Deployment descriptor models.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

class ClusterTarget(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"

class ServiceType(str, Enum):
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"

def to_resource_name(value: str) -> str:
    """Turn an image name into a valid Kubernetes resource name."""
    # K8s names must be lowercase, alphanumeric or '-', max 63 chars
    base = value.rsplit("/", 1)[-1].split(":", 1)[0]
    safe_name = base.lower().replace(" ", "-").replace("_", "-").replace(".", "-")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
    return safe_name.strip("-")[:63] or "app"

class FunctionSpec(BaseModel):
    artifact_path: str = Field(alias="artifactPath")
    function_name: str = Field(alias="functionName", min_length=1)
    region: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

class DeploymentSpec(BaseModel):
    image_name: str = Field(alias="imageName", min_length=1)
    image_tag: str = Field("latest", alias="imageTag", min_length=1)
    registry_uri: Optional[str] = Field(None, alias="registryURI")
    cluster_target: ClusterTarget = Field(ClusterTarget.LOCAL, alias="clusterTarget")
    replicas: int = Field(gt=0)
    container_port: int = Field(alias="containerPort", ge=1, le=65535)
    service_type: ServiceType = Field(ServiceType.NODE_PORT, alias="serviceType")

    name: Optional[str] = None
    namespace: Optional[str] = None
    build_context: str = Field(".", alias="buildContext")
    dockerfile: Optional[str] = None
    cluster_name: Optional[str] = Field(None, alias="clusterName")
    region: Optional[str] = None
    function: Optional[FunctionSpec] = None

    class Config:
        frozen = True
        populate_by_name = True

    @property
    def deployment_name(self) -> str:
        return to_resource_name(self.name or self.image_name)

    @property
    def local_image(self) -> str:
        return f"{self.image_name}:{self.image_tag}"

    @property
    def remote_repository(self) -> Optional[str]:
        if not self.registry_uri:
            return None
        return f"{self.registry_uri.rstrip('/')}/{self.image_name}"

    @property
    def remote_image(self) -> Optional[str]:
        repository = self.remote_repository
        if repository is None:
            return None
        return f"{repository}:{self.image_tag}"

    @property
    def is_local(self) -> bool:
        return self.cluster_target == ClusterTarget.LOCAL
