"""Pydantic models for deployment parameters."""

from typing import Any, Dict, Iterator, List, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_MANIFEST = "kubernetes.yaml"

# Workload kinds in the order their rollouts are awaited
ROLLOUT_KINDS = ("deployment", "statefulset", "daemonset")

WORKLOAD_KEYS = ("deployments", "statefulsets", "daemonsets", "jobs")


def _validate_names(values: List[str], what: str) -> List[str]:
    for name in values:
        if not name or not name.strip():
            raise ValueError(f"{what} names must be non-empty strings")
    return values


class WorkloadRefs(BaseModel):
    """Names of the workloads whose readiness is awaited, grouped by kind."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    deployments: List[str] = Field(default_factory=list)
    statefulsets: List[str] = Field(default_factory=list)
    daemonsets: List[str] = Field(default_factory=list)
    jobs: List[str] = Field(default_factory=list)

    @field_validator("deployments", "statefulsets", "daemonsets", "jobs")
    @classmethod
    def validate_names(cls, v: List[str]) -> List[str]:
        """Reject blank resource names."""
        return _validate_names(v, "Workload")

    def rollout_targets(self) -> Iterator[Tuple[str, str]]:
        """Yield (kind, name) pairs: deployments, then statefulsets, then daemonsets."""
        for kind, names in zip(ROLLOUT_KINDS, (self.deployments, self.statefulsets, self.daemonsets)):
            for name in names:
                yield kind, name

    def is_empty(self) -> bool:
        return not (self.deployments or self.statefulsets or self.daemonsets or self.jobs)


class DeploymentSpec(BaseModel):
    """Parameters for a single deployment run.

    Accepts the flat parameter layout used in pipeline manifests::

        manifests:
        - kubernetes.yaml
        namespace: web
        placeholders:
          VERSION: 1.2.3
        deployments:
        - api
        awaitZeroReplicas: false
        dryrun: false
        jobtimeoutseconds: 300

    The workload lists are grouped into ``workloads``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    manifests: List[str] = Field(default_factory=lambda: [DEFAULT_MANIFEST])
    namespace: str = Field(..., min_length=1)
    placeholders: Dict[str, str] = Field(default_factory=dict)
    workloads: WorkloadRefs = Field(default_factory=WorkloadRefs)
    await_zero_replicas: bool = Field(False, alias="awaitZeroReplicas")
    dry_run: bool = Field(False, alias="dryrun")
    job_timeout_seconds: int = Field(0, ge=0, alias="jobtimeoutseconds")

    @model_validator(mode="before")
    @classmethod
    def group_workloads(cls, data: Any) -> Any:
        """Move flat workload lists under ``workloads``."""
        if not isinstance(data, dict):
            return data
        flat = {key: data[key] for key in WORKLOAD_KEYS if key in data}
        if not flat:
            return data
        data = {key: value for key, value in data.items() if key not in WORKLOAD_KEYS}
        workloads = data.get("workloads") or {}
        if isinstance(workloads, WorkloadRefs):
            workloads = workloads.model_dump()
        data["workloads"] = {**workloads, **{k: v for k, v in flat.items() if v is not None}}
        return data

    @field_validator("manifests", mode="before")
    @classmethod
    def default_manifests(cls, v: Any) -> Any:
        """Fall back to the conventional manifest path when none are given."""
        if v is None or v == []:
            return [DEFAULT_MANIFEST]
        return v

    @field_validator("manifests")
    @classmethod
    def validate_manifests(cls, v: List[str]) -> List[str]:
        """Validate manifest paths."""
        return _validate_names(v, "Manifest")

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Validate namespace is not blank."""
        if not v.strip():
            raise ValueError("Namespace cannot be blank")
        return v

    @field_validator("placeholders")
    @classmethod
    def validate_placeholders(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate placeholder names."""
        for key in v:
            if not key or not isinstance(key, str):
                raise ValueError(f"Placeholder name must be a non-empty string: {key!r}")
            if "}" in key:
                raise ValueError(f"Placeholder name cannot contain '}}': {key}")
        return v
