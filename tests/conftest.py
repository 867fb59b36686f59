"""Shared fixtures: a scripted stand-in for kubectl and manifest workspaces."""

from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import pytest

from kube_deploy.config.models import DeploymentSpec
from kube_deploy.executor.command import CommandExecutor, CommandResult, classify
from kube_deploy.utils.errors import OperationCancelledError


@dataclass
class Response:
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""


ResponseLike = Union[Response, Callable[[List[str], object], Response]]

NOT_FOUND = Response(
    exit_code=1,
    stderr='Error from server (NotFound): deployments.apps "api" not found',
)


def is_dry_run(args: List[str]) -> bool:
    return args[0] == "apply" and "--dry-run=server" in args


def is_apply(args: List[str]) -> bool:
    return args[0] == "apply" and "--dry-run=server" not in args


def is_diff(args: List[str]) -> bool:
    return args[0] == "diff"


def is_rollout(kind: str, name: str) -> Callable[[List[str]], bool]:
    return lambda args: args[:4] == ["rollout", "status", kind, name]


def is_get(kind: str, name: str) -> Callable[[List[str]], bool]:
    return lambda args: args[:3] == ["get", kind, name]


def is_logs(job: str) -> Callable[[List[str]], bool]:
    return lambda args: args[:2] == ["logs", f"job/{job}"]


def manifest_of(args: List[str]) -> Optional[str]:
    """Name of the rendered file passed with -f."""
    if "-f" in args:
        return args[args.index("-f") + 1].replace("\\", "/").split("/")[-1]
    return None


class ScriptedExecutor(CommandExecutor):
    """CommandExecutor whose child processes are replaced by scripted responses.

    Rules are checked in registration order; a rule with several responses
    hands them out one per call and repeats the last one.
    """

    def __init__(self):
        super().__init__(binary="kubectl")
        self.calls: List[List[str]] = []
        self._rules = []

    def when(self, predicate: Callable[[List[str]], bool], *responses: ResponseLike) -> "ScriptedExecutor":
        self._rules.append((predicate, list(responses)))
        return self

    def calls_matching(self, predicate: Callable[[List[str]], bool]) -> List[List[str]]:
        return [call for call in self.calls if predicate(call)]

    def _execute(self, args, token, context):
        args = list(args)
        self.calls.append(args)
        if token is not None and token.cancelled:
            raise OperationCancelledError(f"cancelled ({token.reason})", context=context)

        response: ResponseLike = Response()
        for predicate, responses in self._rules:
            if predicate(args):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                break

        if callable(response):
            response = response(args, token)

        return CommandResult(
            args=[self.binary, *args],
            exit_code=response.exit_code,
            stdout=response.stdout,
            stderr=response.stderr,
            condition=classify(response.exit_code, response.stdout, response.stderr),
        )


@pytest.fixture
def executor():
    return ScriptedExecutor()


@pytest.fixture
def workspace(tmp_path):
    """Working directory holding a templated kubernetes.yaml."""
    (tmp_path / "kubernetes.yaml").write_text(
        "apiVersion: apps/v1\n"
        "kind: Deployment\n"
        "metadata:\n"
        "  name: ${APP}\n"
        "spec:\n"
        "  template:\n"
        "    spec:\n"
        "      containers:\n"
        "      - image: registry/${APP}:${VERSION}\n"
        "        env:\n"
        "        - name: LATER\n"
        "          value: ${RUNTIME_ONLY}\n"
    )
    return tmp_path


def make_spec(**overrides) -> DeploymentSpec:
    data = {
        "namespace": "web",
        "placeholders": {"APP": "api", "VERSION": "1.2.3"},
    }
    data.update(overrides)
    return DeploymentSpec.model_validate(data)
