from deployx.src.services.executor import execute_pipeline, PipelineExecution
from deployx.src.services.manifest_loader import (
    load_deployment_spec,
    parse_deployment_config,
    parse_deployment_dict,
    validate_deployment_spec,
)
from deployx.src.services.image_builder import build_image, push_image, build_and_push
from deployx.src.services.cluster_driver import (
    ensure_cluster,
    apply_deployment,
    wait_for_rollout,
    revert_deployment,
    delete_deployment_resources,
    delete_cluster,
)
from deployx.src.services.function_deployer import deploy_function, package_artifact
from deployx.src.services.status_reporter import (
    update_run_status,
    update_stage_status,
    format_summary,
)

__all__ = [
    "execute_pipeline",
    "PipelineExecution",
    "load_deployment_spec",
    "parse_deployment_config",
    "parse_deployment_dict",
    "validate_deployment_spec",
    "build_image",
    "push_image",
    "build_and_push",
    "ensure_cluster",
    "apply_deployment",
    "wait_for_rollout",
    "revert_deployment",
    "delete_deployment_resources",
    "delete_cluster",
    "deploy_function",
    "package_artifact",
    "update_run_status",
    "update_stage_status",
    "format_summary",
]
