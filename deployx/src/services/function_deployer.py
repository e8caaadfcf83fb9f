"""
AWS Lambda code deployment.
"""

import io
import logging
import os
import zipfile
from functools import lru_cache
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from deployx.src.config import get_settings
from deployx.src.errors import DeployAPIError, PackagingError

logger = logging.getLogger(__name__)
settings = get_settings()

@lru_cache()
def get_lambda_client(region: str):
    return boto3.client(
        "lambda",
        region_name=region,
        config=Config(
            connect_timeout=settings.aws_request_timeout,
            read_timeout=settings.aws_request_timeout,
            retries={"max_attempts": 2},
        ),
    )

def package_artifact(artifact_path: str) -> bytes:
    """
    Build the deployment package in memory.
    A .zip file is used as-is; a directory or single file is zipped.
    """
    if not os.path.exists(artifact_path):
        raise PackagingError(f"Function artifact not found: {artifact_path}")

    try:
        if os.path.isfile(artifact_path) and zipfile.is_zipfile(artifact_path):
            with open(artifact_path, "rb") as f:
                return f.read()

        zip_buffer = io.BytesIO()
        written = 0
        with zipfile.ZipFile(zip_buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
            if os.path.isfile(artifact_path):
                zip_file.write(artifact_path, os.path.basename(artifact_path))
                written += 1
            else:
                for root, dirs, files in os.walk(artifact_path):
                    dirs[:] = sorted(d for d in dirs if d != "__pycache__")
                    for file_name in sorted(files):
                        full_path = os.path.join(root, file_name)
                        zip_file.write(full_path, os.path.relpath(full_path, artifact_path))
                        written += 1
    except OSError as e:
        raise PackagingError(f"Could not package {artifact_path}", detail=str(e))

    if written == 0:
        raise PackagingError(f"Function artifact is empty: {artifact_path}")

    zip_buffer.seek(0)
    return zip_buffer.read()

def deploy_function(artifact_path: str, function_name: str,
                    region: Optional[str] = None) -> Dict[str, Any]:
    """Upload new code to an existing Lambda function and publish a version."""
    zip_code = package_artifact(artifact_path)
    region = region or settings.aws_region
    logger.info(f"Updating Lambda function {function_name} in {region} ({len(zip_code)} bytes)")

    try:
        response = get_lambda_client(region).update_function_code(
            FunctionName=function_name,
            ZipFile=zip_code,
            Publish=True,
        )
    except ClientError as e:
        error = e.response.get("Error", {})
        raise DeployAPIError(
            f"Lambda update_function_code failed for {function_name}",
            detail=f"{error.get('Code', 'Unknown')}: {error.get('Message', str(e))}",
        )
    except BotoCoreError as e:
        raise DeployAPIError(
            f"Lambda update_function_code failed for {function_name}", detail=str(e)
        )

    logger.info(f"Deployed {function_name} version {response.get('Version')}")
    return {
        "function_arn": response.get("FunctionArn"),
        "version": response.get("Version"),
        "code_sha256": response.get("CodeSha256"),
    }
