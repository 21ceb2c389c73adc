"""Configuration for the cluster verification commands.

Every value can be overridden with a ``KUBE_VERIFY_`` prefixed environment
variable or an ``.env`` file; command line flags take precedence over both.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Label put on Tekton pipeline run pods; excluded from install checks by default
PIPELINE_RUN_LABEL = "tekton.dev/pipelineRun"

# Written by `install --verbose` with the logs of failed pods
VERIFY_POD_LOG_FILE = "verify-pod.log"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KUBE_VERIFY_", env_file=".env", env_file_encoding="utf-8")

    namespace: Optional[str] = Field(default=None, description="Namespace to verify; defaults to the current one")
    kube_context: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")

    # pods
    pod_count: int = Field(default=2, ge=1, description="Ready pods required before `pods` succeeds")
    watch_timeout_seconds: int = Field(default=300, ge=1, description="Server side timeout of a single watch call")

    # job
    job_duration_seconds: float = Field(default=3600.0, ge=0)
    job_poll_seconds: float = Field(default=1.0, gt=0)

    # install
    install_wait_seconds: float = Field(default=120.0, ge=0)
    install_poll_seconds: float = Field(default=10.0, gt=0)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
