from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # Kubernetes settings
    k8s_namespace: str = "default"
    k8s_in_cluster: bool = False  # Set True when running inside K8s
    kube_context: str = ""  # Empty means current kubeconfig context

    # Rollout settings
    rollout_timeout: int = 300
    rollout_poll_interval: float = 2.0
    transient_retries: int = 1  # Retries on transient control-plane errors only
    k8s_request_timeout: float = 30.0  # Seconds per API call

    # External tools
    docker_bin: str = "docker"
    minikube_bin: str = "minikube"
    eksctl_bin: str = "eksctl"
    aws_bin: str = "aws"
    build_timeout: int = 1800
    push_timeout: int = 900
    cluster_create_timeout: int = 2400
    check_tools: bool = True

    # AWS settings
    aws_region: str = "us-east-1"
    eks_cluster_name: str = "deployx"
    eks_node_count: int = 2
    aws_request_timeout: int = 60

    # Run logs
    log_dir: str = "logs"

    # Empty keeps apply locks in-process
    redis_url: str = ""
    lock_timeout: int = 600

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
