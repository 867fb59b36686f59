"""Tests for run parameter parsing and validation."""

import json

import pytest

from kube_deploy.config.models import DEFAULT_MANIFEST, DeploymentSpec, WorkloadRefs
from kube_deploy.config.parser import Config, ConfigValidationError
from kube_deploy.utils.errors import ConfigurationError

PARAMS_YAML = """
manifests:
- kubernetes.yaml
- jobs.yaml
namespace: web
placeholders:
  VERSION: "1.2.3"
deployments:
- api
statefulsets:
- db
jobs:
- migrate
awaitZeroReplicas: true
jobtimeoutseconds: 300
"""


class TestDeploymentSpec:
    def test_defaults(self):
        spec = DeploymentSpec(namespace="web")

        assert spec.manifests == [DEFAULT_MANIFEST]
        assert spec.placeholders == {}
        assert spec.workloads.is_empty()
        assert spec.await_zero_replicas is False
        assert spec.dry_run is False
        assert spec.job_timeout_seconds == 0

    def test_empty_manifest_list_falls_back_to_default(self):
        spec = DeploymentSpec.model_validate({"namespace": "web", "manifests": []})
        assert spec.manifests == [DEFAULT_MANIFEST]

    def test_flat_workload_keys_are_grouped(self):
        spec = DeploymentSpec.model_validate(
            {"namespace": "web", "deployments": ["api"], "jobs": ["migrate"]}
        )
        assert spec.workloads == WorkloadRefs(deployments=["api"], jobs=["migrate"])

    def test_rollout_targets_order(self):
        refs = WorkloadRefs(deployments=["a", "b"], statefulsets=["db"], daemonsets=["agent"])
        assert list(refs.rollout_targets()) == [
            ("deployment", "a"),
            ("deployment", "b"),
            ("statefulset", "db"),
            ("daemonset", "agent"),
        ]

    def test_field_names_and_aliases_are_both_accepted(self):
        by_alias = DeploymentSpec.model_validate({"namespace": "web", "dryrun": True})
        by_name = DeploymentSpec.model_validate({"namespace": "web", "dry_run": True})
        assert by_alias.dry_run and by_name.dry_run

    @pytest.mark.parametrize("data", [
        {},
        {"namespace": "   "},
        {"namespace": "web", "jobtimeoutseconds": -1},
        {"namespace": "web", "placeholders": {"A}": "x"}},
        {"namespace": "web", "deployments": [""]},
        {"namespace": "web", "unknown": 1},
    ])
    def test_invalid_parameters_are_rejected(self, data):
        with pytest.raises(ValueError):
            DeploymentSpec.model_validate(data)

    def test_spec_is_immutable(self):
        spec = DeploymentSpec(namespace="web")
        with pytest.raises(ValueError):
            spec.namespace = "other"


class TestConfig:
    def test_from_string(self):
        spec = Config.from_string(PARAMS_YAML).load()

        assert spec.manifests == ["kubernetes.yaml", "jobs.yaml"]
        assert spec.namespace == "web"
        assert spec.placeholders == {"VERSION": "1.2.3"}
        assert spec.workloads.deployments == ["api"]
        assert spec.workloads.statefulsets == ["db"]
        assert spec.workloads.jobs == ["migrate"]
        assert spec.await_zero_replicas is True
        assert spec.job_timeout_seconds == 300

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text(PARAMS_YAML)

        config = Config.from_file(str(path))

        assert config.source == str(path)
        assert config.load().namespace == "web"

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "params.json"
        path.write_text(json.dumps({"namespace": "web", "daemonsets": ["agent"]}))

        spec = Config.from_file(str(path)).load()

        assert spec.workloads.daemonsets == ["agent"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config.from_file(str(tmp_path / "nope.yaml"))

    def test_malformed_yaml(self):
        with pytest.raises(ConfigValidationError):
            Config.from_string("namespace: [unclosed")

    def test_non_mapping_parameters(self):
        with pytest.raises(ConfigValidationError):
            Config.from_string("- just\n- a list\n")

    def test_validation_errors_are_listed(self):
        config = Config.from_string("namespace: web\njobtimeoutseconds: -5\n")

        errors = config.validate()

        assert len(errors) == 1
        assert errors[0]["loc"] == ["jobtimeoutseconds"]

        with pytest.raises(ConfigValidationError) as exc_info:
            config.load()
        assert "jobtimeoutseconds" in str(exc_info.value)

    def test_unquoted_placeholder_values_keep_their_text(self):
        spec = Config.from_string(
            "namespace: web\n"
            "awaitZeroReplicas: true\n"
            "jobtimeoutseconds: 300\n"
            "placeholders:\n"
            "  REPLICAS: 3\n"
            "  VERSION: 1.10\n"
            "  DEBUG: yes\n"
        ).load()

        assert spec.placeholders == {"REPLICAS": "3", "VERSION": "1.10", "DEBUG": "yes"}
        assert spec.await_zero_replicas is True
        assert spec.job_timeout_seconds == 300

    def test_nested_placeholder_value_is_rejected(self):
        config = Config.from_string("namespace: web\nplaceholders:\n  IMAGE:\n    tag: x\n")
        with pytest.raises(ConfigValidationError):
            config.load()

    def test_namespace_fallback(self):
        spec = Config.from_string("deployments: [api]").load(namespace="fallback")
        assert spec.namespace == "fallback"

        spec = Config.from_string("namespace: web").load(namespace="fallback")
        assert spec.namespace == "web"

    @pytest.mark.parametrize("release_action", ["diff", "DIFF"])
    def test_diff_release_action_forces_dry_run(self, release_action):
        spec = Config.from_string("namespace: web").load(release_action=release_action)
        assert spec.dry_run is True

    def test_other_release_action_keeps_dry_run_flag(self):
        assert Config.from_string("namespace: web").load(release_action="apply").dry_run is False
        assert Config.from_string("namespace: web").load(dry_run=True).dry_run is True

    def test_with_defaults_layers_underneath(self):
        config = Config.from_string(
            "namespace: web\nplaceholders:\n  VERSION: '2'\n"
        ).with_defaults({
            "namespace": "default-ns",
            "placeholders": {"VERSION": "1", "PROJECT": "acme"},
            "jobtimeoutseconds": 60,
        })

        spec = config.load()

        assert spec.namespace == "web"
        assert spec.placeholders == {"VERSION": "2", "PROJECT": "acme"}
        assert spec.job_timeout_seconds == 60
