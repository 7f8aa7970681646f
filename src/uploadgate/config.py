"""Configuration loading and Pydantic models for uploadgate."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from uploadgate.validation import MAX_PARTS


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class StorageConfig(BaseModel):
    """Backing object store configuration."""

    backend: str = "memory"
    aws_bucket: str = ""
    aws_region: str = "us-east-1"
    aws_prefix: str = ""
    aws_endpoint_url: str = ""
    aws_use_path_style: bool = False
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    memory_max_size_bytes: int = 0


class UploadsConfig(BaseModel):
    """Upload session tracking configuration."""

    store_timeout_seconds: float = 30.0
    max_parts: int = Field(default=MAX_PARTS, ge=1, le=MAX_PARTS)
    max_key_bytes: int = 1024
    retain_incomplete: bool = False
    abort_discarded: bool = False
    session_ttl_seconds: float = 0
    reap_interval_seconds: float = Field(default=60.0, gt=0)


class ObservabilityConfig(BaseModel):
    """Metrics configuration."""

    metrics: bool = True


class UploadGateConfig(BaseModel):
    """Top-level uploadgate configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    uploads: UploadsConfig = Field(default_factory=UploadsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    keys = ("host", "port", "log_level", "log_format", "shutdown_timeout")
    return {k: data[k] for k in keys if k in data}


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.aws.bucket -> aws_bucket, etc.
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "memory")}

    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        for name in (
            "bucket",
            "region",
            "prefix",
            "endpoint_url",
            "use_path_style",
            "access_key_id",
            "secret_access_key",
        ):
            if name in aws_section:
                result[f"aws_{name}"] = aws_section[name]

    memory_section = data.get("memory")
    if isinstance(memory_section, dict) and "max_size_bytes" in memory_section:
        result["memory_max_size_bytes"] = memory_section["max_size_bytes"]

    return result


def _parse_flat(data: dict[str, Any] | None) -> dict[str, Any]:
    """Pass a flat section through unchanged (Pydantic ignores unknown keys)."""
    return dict(data) if isinstance(data, dict) else {}


def apply_env_overrides(config: UploadGateConfig, environ: dict[str, str] | None = None) -> None:
    """Apply environment variable overrides in place.

    ``PORT`` overrides ``server.port``. ``AWS_BUCKET_NAME`` sets the upstream
    bucket and selects the ``aws`` backend. ``AWS_REGION`` sets the region.
    """
    env = os.environ if environ is None else environ

    port = env.get("PORT")
    if port:
        config.server.port = int(port)

    bucket = env.get("AWS_BUCKET_NAME")
    if bucket:
        config.storage.backend = "aws"
        config.storage.aws_bucket = bucket

    region = env.get("AWS_REGION")
    if region:
        config.storage.aws_region = region


def load_config(path: Path) -> UploadGateConfig:
    """Load an UploadGateConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated UploadGateConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value is out of range.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return UploadGateConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        uploads=UploadsConfig(**_parse_flat(raw.get("uploads"))),
        observability=ObservabilityConfig(**_parse_flat(raw.get("observability"))),
    )
