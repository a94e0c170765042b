import logging
import subprocess
from unittest import mock

import pytest

from fluxkube.kubectl import Kubectl, KubectlConfig, KubectlError
from fluxkube.kubernetes import ApiObject

LOGGER = logging.getLogger("test")


def _completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_connect_args_empty():
    assert Kubectl("kubectl").connect_args() == []


def test_connect_args_all():
    password = "password"
    config = KubectlConfig(
        host="https://example.com",
        username="user",
        password=password,
        cert_file="/c.crt",
        ca_file="/ca.crt",
        key_file="/k.key",
        bearer_token="token",
    )
    assert Kubectl("kubectl", config).connect_args() == [
        "--server=https://example.com",
        "--username=user",
        "--password=" + password,
        "--client-certificate=/c.crt",
        "--certificate-authority=/ca.crt",
        "--client-key=/k.key",
        "--token=token",
    ]


def test_apply_runs_kubectl_with_definition():
    kubectl = Kubectl("kubectl", KubectlConfig(host="https://example.com"))
    obj = ApiObject(data=b"kind: Deployment\n", name="web", namespace="")
    with mock.patch("subprocess.run", return_value=_completed()) as run:
        result = kubectl.apply(LOGGER, obj)
    assert result is None
    args, kwargs = run.call_args
    assert args[0] == [
        "kubectl",
        "--server=https://example.com",
        "--namespace",
        "default",
        "apply",
        "-f",
        "-",
    ]
    assert kwargs["input"] == b"kind: Deployment\n"


def test_delete_uses_object_namespace():
    kubectl = Kubectl("kubectl")
    obj = ApiObject(data=b"x", namespace="prod")
    with mock.patch("subprocess.run", return_value=_completed()) as run:
        result = kubectl.delete(LOGGER, obj)
    assert result is None
    assert run.call_args[0][0] == ["kubectl", "--namespace", "prod", "delete", "-f", "-"]


def test_failure_raises_with_stderr():
    kubectl = Kubectl("kubectl")
    with mock.patch("subprocess.run", return_value=_completed(1, stderr=b" boom \n")):
        with pytest.raises(KubectlError, match="running kubectl: boom"):
            kubectl.apply(LOGGER, ApiObject(data=b"x"))


def test_missing_executable_raises():
    kubectl = Kubectl("/nonexistent/kubectl-binary")
    with pytest.raises(KubectlError, match="running kubectl"):
        kubectl.apply(LOGGER, ApiObject(data=b"x"))