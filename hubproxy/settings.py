from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hubproxy.utils.logging_utils import LogFormats

PACKAGE_DIR = Path(__file__).resolve().parent


class GeneralConfig(BaseSettings):
    PUBLIC_URL: str = "http://localhost:8000"
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""


class ProxyPolicyConfig(BaseSettings):
    # Exact hostnames only, no wildcards or suffix matching
    ALLOWED_HOSTS: list[str] = [
        "quay.io",
        "gcr.io",
        "k8s.gcr.io",
        "registry.k8s.io",
        "ghcr.io",
        "docker.cloudsmith.io",
        "registry-1.docker.io",
        "github.com",
        "api.github.com",
        "raw.githubusercontent.com",
        "gist.github.com",
        "gist.githubusercontent.com",
        "git.openwrt.org",
    ]
    REGISTRY_HOSTS: list[str] = [
        "quay.io",
        "gcr.io",
        "k8s.gcr.io",
        "registry.k8s.io",
        "ghcr.io",
        "docker.cloudsmith.io",
        "registry-1.docker.io",
    ]

    RESTRICT_PATHS: bool = False
    ALLOWED_PATHS: list[str] = ["library"]
    """Case-insensitive keywords, only checked when RESTRICT_PATHS is enabled"""

    DOCKER_HUB_REGISTRY: str = "registry-1.docker.io"
    DOCKER_HUB_ALIAS: str = "docker.io"
    MAX_REDIRECTS: int = 5

    @model_validator(mode="after")
    def validate_registry_hosts_allowed(self):
        """Every registry host must also be proxyable"""
        missing = sorted(set(self.REGISTRY_HOSTS) - set(self.ALLOWED_HOSTS))
        if missing:
            raise ValueError(
                f"REGISTRY_HOSTS must be a subset of ALLOWED_HOSTS, missing: {missing}"
            )
        return self


class LoggingConfig(BaseSettings):
    LOG_FORMAT: LogFormats = LogFormats.JSON
    LOG_LEVEL: str = "INFO"


class UpstreamConfig(BaseSettings):
    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = 30.0
    UPSTREAM_READ_TIMEOUT_SECONDS: float = 1800.0  # large image layers
    UPSTREAM_WRITE_TIMEOUT_SECONDS: float = 1800.0
    UPSTREAM_POOL_TIMEOUT_SECONDS: float = 10.0

    # Covers dispatch, auth retry and every redirect hop, not body streaming
    UPSTREAM_TOTAL_TIMEOUT_SECONDS: float = 120.0
    TOKEN_TIMEOUT_SECONDS: float = 30.0


class StaticConfig(BaseSettings):
    STATIC_DIR: Path = PACKAGE_DIR / "static"


class Settings(
    GeneralConfig,
    ProxyPolicyConfig,
    LoggingConfig,
    UpstreamConfig,
    StaticConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod", ".env.test"),
        extra="allow",
    )


settings = Settings()
