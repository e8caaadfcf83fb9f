"""
Deployment descriptor parser and validator.
"""

import os
import yaml
from pydantic import ValidationError as PydanticValidationError
from typing import Dict, Any, Optional

from deployx.src.errors import ValidationError
from deployx.src.models.deployment import DeploymentSpec, ClusterTarget

# Descriptor key -> accepted snake_case spelling
REQUIRED_FIELDS = {
    "imageName": "image_name",
    "replicas": "replicas",
    "containerPort": "container_port",
}

def load_deployment_spec(path: str) -> DeploymentSpec:
    """Read a YAML or JSON descriptor from disk."""
    if not os.path.isfile(path):
        raise ValidationError("spec", f"Descriptor file not found: {path}")

    with open(path, "r") as f:
        content = f.read()

    return parse_deployment_config(content)

def parse_deployment_config(content: str) -> DeploymentSpec:
    """Parse descriptor from string. JSON input is valid YAML."""
    try:
        config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValidationError("spec", f"Invalid YAML: {e}")

    return parse_deployment_dict(config)

def parse_deployment_dict(config: Optional[Dict[str, Any]]) -> DeploymentSpec:
    """Validate descriptor structure and build a DeploymentSpec."""
    if not config:
        raise ValidationError("spec", "Empty deployment descriptor")

    if not isinstance(config, dict):
        raise ValidationError("spec", "Deployment descriptor must be a mapping")

    for key, snake_key in REQUIRED_FIELDS.items():
        if config.get(key) is None and config.get(snake_key) is None:
            raise ValidationError(key, f"Descriptor missing '{key}'")

    try:
        return DeploymentSpec.model_validate(config)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "spec"
        raise ValidationError(field, f"Invalid '{field}': {error['msg']}")

def validate_deployment_spec(spec: DeploymentSpec) -> DeploymentSpec:
    """Cross-field checks that a single field validator cannot express."""
    if spec.cluster_target == ClusterTarget.CLOUD and not spec.registry_uri:
        raise ValidationError(
            "registryURI", "Cloud targets need 'registryURI' to pull the image from"
        )

    if not os.path.isdir(spec.build_context):
        raise ValidationError(
            "buildContext", f"Build context not found: {spec.build_context}"
        )

    if spec.function is not None and not os.path.exists(spec.function.artifact_path):
        raise ValidationError(
            "function.artifactPath",
            f"Function artifact not found: {spec.function.artifact_path}",
        )

    return spec
