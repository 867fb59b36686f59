"""YAML/JSON parameter parser for deployment runs."""

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from kube_deploy.config.models import DeploymentSpec
from kube_deploy.utils.errors import ConfigurationError

# Release action that only validates and diffs
DIFF_RELEASE_ACTION = "diff"


class ConfigValidationError(ConfigurationError):
    """Exception raised when run parameters fail validation."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Loads and validates the parameters of a deployment run."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, source: str = "<parameters>"):
        """Initialize configuration.

        Args:
            data: Raw parameter mapping
            source: Where the parameters came from, used in error messages
        """
        self.data: Dict[str, Any] = data or {}
        self.source = source
        self.spec: Optional[DeploymentSpec] = None

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """Read parameters from a YAML or JSON file.

        Raises:
            ConfigurationError: If the file does not exist
            ConfigValidationError: If the file cannot be parsed
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed reading configuration file {path}", cause=e)

        if path.suffix == ".json":
            try:
                data = json.loads(text) if text.strip() else {}
            except json.JSONDecodeError as e:
                raise ConfigValidationError(f"Failed to parse JSON in {path}: {e}")
            return cls(cls._ensure_mapping(data, str(path)), source=str(path))

        return cls.from_string(text, source=str(path))

    @classmethod
    def from_string(cls, text: str, source: str = "<parameters>") -> "Config":
        """Parse parameters from YAML text (JSON is valid YAML too).

        Placeholder values keep their source text, so ``VERSION: 1.10`` renders
        as ``1.10`` and ``REPLICAS: 3`` as ``3``.
        """
        try:
            data = yaml.safe_load(text) if text else {}
            raw = yaml.load(text, Loader=yaml.BaseLoader) if text else {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML in {source}: {e}")

        data = cls._ensure_mapping(data, source)
        if isinstance(raw, dict) and isinstance(raw.get("placeholders"), dict):
            data["placeholders"] = raw["placeholders"]
        return cls(data, source=source)

    @staticmethod
    def _ensure_mapping(data: Any, source: str) -> Dict[str, Any]:
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Parameters in {source} must be a mapping, got {type(data).__name__}"
            )
        return data

    def with_defaults(self, defaults: Optional[Mapping[str, Any]]) -> "Config":
        """Layer ``defaults`` underneath the parameters.

        Top-level keys present in the parameters win; placeholder mappings are
        merged key by key.
        """
        if not defaults:
            return self
        merged = dict(defaults)
        for key, value in self.data.items():
            if key == "placeholders" and isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return Config(merged, source=self.source)

    def validate(self) -> List[Dict]:
        """Validate parameters against the schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        try:
            DeploymentSpec.model_validate(self.data)
        except PydanticValidationError as e:
            for error in e.errors():
                errors.append(
                    {
                        "loc": list(error["loc"]),
                        "msg": error["msg"],
                    }
                )
        return errors

    def load(
        self,
        namespace: Optional[str] = None,
        release_action: Optional[str] = None,
        dry_run: bool = False
    ) -> DeploymentSpec:
        """Build the DeploymentSpec for this run.

        Args:
            namespace: Namespace used when the parameters do not set one
            release_action: Release action; ``diff`` forces a dry run
            dry_run: Force a dry run

        Returns:
            Validated, immutable DeploymentSpec

        Raises:
            ConfigValidationError: If the parameters are invalid
        """
        data = dict(self.data)
        if namespace and not data.get("namespace"):
            data["namespace"] = namespace

        try:
            spec = DeploymentSpec.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigValidationError(
                f"Parameters in {self.source} failed validation with {e.error_count()} error(s)",
                [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
            )

        if dry_run or (release_action or "").lower() == DIFF_RELEASE_ACTION:
            spec = spec.model_copy(update={"dry_run": True})

        self.spec = spec
        return spec
