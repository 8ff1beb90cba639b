"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all clusterforge settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Region-keyed values (default EKS images) are "region=value" tuples so they
  can be overridden from a single comma-separated environment variable
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    """Action pipeline configuration."""
    step_timeout_seconds: int = 1800


@dataclass(frozen=True)
class EksConfig:
    """Amazon EKS provider defaults."""
    default_spot_price: str = "0.0"
    default_version: str = "1.10"
    default_images: tuple[str, ...] = (
        "us-east-1=ami-0440e4f6b9713faf6",
        "us-west-2=ami-0a54c984b9f908c81",
        "eu-west-1=ami-0c7a4976cb6fafd3a",
    )

    def image_for(self, region: str) -> str:
        for entry in self.default_images:
            key, _, value = entry.partition("=")
            if key.strip() == region:
                return value.strip()
        return ""


@dataclass(frozen=True)
class OkeConfig:
    """Oracle OKE provider defaults."""
    default_version: str = "v1.10.3"
    default_image: str = "Oracle-Linux-7.4"
    default_shape: str = "VM.Standard1.1"


@dataclass(frozen=True)
class DatabaseConfig:
    """Cluster repository configuration."""
    path: str = "clusterforge.db"


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    service_name: str = "clusterforge"
    insecure: bool = False


@dataclass(frozen=True)
class ClusterforgeConfig:
    """Root configuration for the clusterforge application."""
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    eks: EksConfig = field(default_factory=EksConfig)
    oke: OkeConfig = field(default_factory=OkeConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"
    log_json: bool = False


def _env_override(data: dict, prefix: str = "CLUSTERFORGE") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern CLUSTERFORGE_SECTION_KEY.
    For example: CLUSTERFORGE_PIPELINE_STEP_TIMEOUT_SECONDS=600,
    CLUSTERFORGE_EKS_DEFAULT_IMAGES=us-east-1=ami-1,eu-west-1=ami-2
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name in ("log_level", "log_json"):
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return bool(value)


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    for f in dataclasses.fields(cls):
        if f.name not in filtered:
            continue
        val = filtered[f.name]

        # Comma-separated strings become tuples for tuple fields
        if f.type == "tuple[str, ...]":
            if isinstance(val, str):
                filtered[f.name] = tuple(v.strip() for v in val.split(",") if v.strip())
            elif isinstance(val, dict):
                filtered[f.name] = tuple(f"{k}={v}" for k, v in val.items())
            elif isinstance(val, list):
                filtered[f.name] = tuple(val)
        elif isinstance(val, str):
            if f.type == "int":
                filtered[f.name] = int(val)
            elif f.type == "bool":
                filtered[f.name] = _to_bool(val)

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "CLUSTERFORGE",
) -> ClusterforgeConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (CLUSTERFORGE_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to clusterforge.json in CWD.
        env_prefix: Environment variable prefix. Defaults to CLUSTERFORGE.
    """
    config_path = Path(path) if path else Path("clusterforge.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return ClusterforgeConfig(
        pipeline=_build_sub_config(PipelineConfig, data.get("pipeline", {})),
        eks=_build_sub_config(EksConfig, data.get("eks", {})),
        oke=_build_sub_config(OkeConfig, data.get("oke", {})),
        database=_build_sub_config(DatabaseConfig, data.get("database", {})),
        telemetry=_build_sub_config(TelemetryConfig, data.get("telemetry", {})),
        log_level=data.get("log_level", "WARNING"),
        log_json=_to_bool(data.get("log_json", False)),
    )
