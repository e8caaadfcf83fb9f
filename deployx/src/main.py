"""
deployx - command line entry point.
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from deployx.src.config import get_settings
from deployx.src.errors import Cancelled, DeployError, ValidationError
from deployx.src.models.deployment import ClusterTarget
from deployx.src.models.run import PipelineRun, RunStatus
from deployx.src.services.cluster_driver import delete_cluster, delete_deployment_resources
from deployx.src.services.executor import execute_pipeline
from deployx.src.services.manifest_loader import load_deployment_spec, validate_deployment_spec
from deployx.src.services.status_reporter import format_summary, run_log_path

logger = logging.getLogger(__name__)

def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    # Client libraries are noisy at DEBUG
    for name in ("kubernetes", "urllib3", "botocore", "boto3"):
        logging.getLogger(name).setLevel(logging.WARNING)

def load_spec_or_exit(path: str, target: Optional[str] = None):
    try:
        spec = load_deployment_spec(path)
    except ValidationError as e:
        click.echo(f"Invalid descriptor {path}: {e}", err=True)
        sys.exit(ValidationError.exit_code)

    if target:
        spec = spec.model_copy(update={"cluster_target": ClusterTarget(target)})
    return spec

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def cli(verbose: bool):
    """Build, push and roll out a container image to Minikube or EKS."""
    configure_logging(verbose)

@cli.command()
@click.option("--spec", "spec_path", required=True, type=click.Path(), help="Deployment descriptor (YAML/JSON)")
@click.option("--target", type=click.Choice([t.value for t in ClusterTarget]), help="Override clusterTarget")
@click.option("--timeout", type=click.IntRange(min=1), help="Rollout timeout in seconds")
@click.option("--create-cluster", is_flag=True, help="Start/create the cluster if it is not running")
@click.option("--log-dir", type=click.Path(file_okay=False), help="Directory for run logs")
def deploy(spec_path: str, target: Optional[str], timeout: Optional[int],
           create_cluster: bool, log_dir: Optional[str]):
    """Run the full deployment pipeline."""
    spec = load_spec_or_exit(spec_path, target)
    run = PipelineRun(spec=spec)
    log_dir = log_dir or get_settings().log_dir

    try:
        asyncio.run(execute_pipeline(
            spec,
            run=run,
            rollout_timeout=timeout,
            create_cluster=create_cluster,
            log_dir=log_dir,
        ))
    except KeyboardInterrupt:
        # asyncio.run cancels the pipeline first, so the run is already failed
        if not run.is_terminal:
            if run.status == RunStatus.PENDING:
                run.start()
            stage = run.current_stage
            message = f"Interrupted during {stage}" if stage else "Interrupted"
            run.fail(stage, Cancelled.__name__, message, Cancelled.exit_code)

    click.echo(format_summary(run))
    click.echo(f"Log: {run_log_path(run, log_dir)}")
    sys.exit(run.exit_code)

@cli.command()
@click.option("--spec", "spec_path", required=True, type=click.Path(), help="Deployment descriptor (YAML/JSON)")
def validate(spec_path: str):
    """Load and check a descriptor without deploying."""
    spec = load_spec_or_exit(spec_path)
    try:
        validate_deployment_spec(spec)
    except ValidationError as e:
        click.echo(f"Invalid descriptor {spec_path}: {e}", err=True)
        sys.exit(e.exit_code)

    click.echo(spec.model_dump_json(indent=2, by_alias=True, exclude_none=True))

@cli.command()
@click.option("--spec", "spec_path", required=True, type=click.Path(), help="Deployment descriptor (YAML/JSON)")
@click.option("--target", type=click.Choice([t.value for t in ClusterTarget]), help="Override clusterTarget")
@click.option("--delete-cluster", "delete_cluster_flag", is_flag=True, help="Also delete the Minikube/EKS cluster")
def teardown(spec_path: str, target: Optional[str], delete_cluster_flag: bool):
    """Delete the deployment and service, optionally the cluster."""
    spec = load_spec_or_exit(spec_path, target)

    async def _teardown():
        deleted = await delete_deployment_resources(spec)
        for kind, existed in deleted.items():
            click.echo(f"{kind} {spec.deployment_name}: {'deleted' if existed else 'not found'}")
        if delete_cluster_flag:
            await delete_cluster(spec)
            click.echo("cluster deleted")

    try:
        asyncio.run(_teardown())
    except DeployError as e:
        click.echo(f"Teardown failed: {e}", err=True)
        sys.exit(e.exit_code)

def main():
    cli()

if __name__ == "__main__":
    main()
