"""Configuration management for deployment runs."""

from .models import (
    DEFAULT_MANIFEST,
    ROLLOUT_KINDS,
    DeploymentSpec,
    WorkloadRefs,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "DEFAULT_MANIFEST",
    "ROLLOUT_KINDS",
    "DeploymentSpec",
    "WorkloadRefs",
    "Config",
    "ConfigValidationError",
]
