"""Tests for the command line interface."""

import json
import pytest
from unittest.mock import AsyncMock, patch
from click.testing import CliRunner

from deployx.src.main import cli
from deployx.src.models.run import PipelineRun

@pytest.fixture
def spec_file(tmp_path):
    path = tmp_path / "deploy.yaml"
    path.write_text("imageName: jupyter-notebook\nreplicas: 1\ncontainerPort: 8888\n")
    return path

def fake_pipeline(stage=None, reason=None, exit_code=0):
    async def run_pipeline(spec, run: PipelineRun, **kwargs):
        assert run.spec == spec
        run.start()
        if stage:
            run.fail(stage, reason, "boom", exit_code)
        else:
            run.succeed()
        return run
    return AsyncMock(side_effect=run_pipeline)

def test_validate_prints_spec(spec_file):
    result = CliRunner().invoke(cli, ["validate", "--spec", str(spec_file)])

    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["imageName"] == "jupyter-notebook"
    assert output["clusterTarget"] == "local"

def test_validate_reports_missing_field(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("imageName: web\nreplicas: 1\n")

    result = CliRunner().invoke(cli, ["validate", "--spec", str(path)])

    assert result.exit_code == 1
    assert "containerPort" in result.output

def test_deploy_success(spec_file, tmp_path):
    pipeline = fake_pipeline()
    with patch("deployx.src.main.execute_pipeline", pipeline):
        result = CliRunner().invoke(
            cli, ["deploy", "--spec", str(spec_file), "--timeout", "60", "--log-dir", str(tmp_path)],
        )

    assert result.exit_code == 0
    assert "succeeded" in result.output
    assert pipeline.call_args.kwargs["rollout_timeout"] == 60

@pytest.mark.parametrize("stage,reason,code", [
    ("build", "BuildFailed", 2),
    ("push", "PushFailed", 3),
    ("rolloutVerify", "RolloutTimeout", 4),
    ("functionDeploy", "DeployAPIError", 5),
    ("rolloutVerify", "Cancelled", 130),
])
def test_deploy_exit_codes(spec_file, tmp_path, stage, reason, code):
    with patch("deployx.src.main.execute_pipeline", fake_pipeline(stage, reason, code)):
        result = CliRunner().invoke(cli, ["deploy", "--spec", str(spec_file), "--log-dir", str(tmp_path)])

    assert result.exit_code == code
    assert f"Failed at {stage}: {reason}" in result.output

def test_deploy_target_override(spec_file, tmp_path):
    pipeline = fake_pipeline()
    with patch("deployx.src.main.execute_pipeline", pipeline):
        CliRunner().invoke(
            cli, ["deploy", "--spec", str(spec_file), "--target", "cloud", "--log-dir", str(tmp_path)],
        )

    spec = pipeline.call_args.args[0]
    assert spec.cluster_target.value == "cloud"

def test_deploy_invalid_descriptor_never_runs(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("replicas: 1\ncontainerPort: 80\n")
    pipeline = fake_pipeline()

    with patch("deployx.src.main.execute_pipeline", pipeline):
        result = CliRunner().invoke(cli, ["deploy", "--spec", str(path)])

    assert result.exit_code == 1
    assert "imageName" in result.output
    pipeline.assert_not_called()

def test_deploy_interrupt_records_running_stage(spec_file, tmp_path):
    async def interrupted(spec, run: PipelineRun, **kwargs):
        run.start()
        run.current_stage = "rolloutVerify"
        raise KeyboardInterrupt

    with patch("deployx.src.main.execute_pipeline", AsyncMock(side_effect=interrupted)):
        result = CliRunner().invoke(cli, ["deploy", "--spec", str(spec_file), "--log-dir", str(tmp_path)])

    assert result.exit_code == 130
    assert "Failed at rolloutVerify: Cancelled: Interrupted during rolloutVerify" in result.output

def test_teardown(spec_file):
    delete = AsyncMock(return_value={"service": True, "deployment": False})
    with patch("deployx.src.main.delete_deployment_resources", delete), \
         patch("deployx.src.main.delete_cluster", AsyncMock()) as delete_cluster:
        result = CliRunner().invoke(cli, ["teardown", "--spec", str(spec_file), "--delete-cluster"])

    assert result.exit_code == 0
    assert "service jupyter-notebook: deleted" in result.output
    assert "deployment jupyter-notebook: not found" in result.output
    delete_cluster.assert_awaited_once()
