"""Applying and deleting resource definitions by running kubectl."""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from typing import Any

from fluxkube.kubernetes import ApiObject


class KubectlError(Exception):
    """kubectl could not be run or reported failure."""


@dataclass
class KubectlConfig:
    """Connection settings passed to kubectl on its command line."""

    host: str = ""
    username: str = ""
    password: str = ""
    cert_file: str = ""
    ca_file: str = ""
    key_file: str = ""
    bearer_token: str = ""


class Kubectl:
    """Applies and deletes definitions with the kubectl executable."""

    def __init__(self, exe: str, config: KubectlConfig | None = None) -> None:
        self.exe = exe
        self.config = config or KubectlConfig()

    def connect_args(self) -> list[str]:
        """The flags that tell kubectl how to reach the API server."""
        c = self.config
        flags = [
            ("--server", c.host),
            ("--username", c.username),
            ("--password", c.password),
            ("--client-certificate", c.cert_file),
            ("--certificate-authority", c.ca_file),
            ("--client-key", c.key_file),
            ("--token", c.bearer_token),
        ]
        return [f"{flag}={value}" for flag, value in flags if value]

    def _do_command(self, logger: Any, definition: bytes, *args: str) -> None:
        begin = time.monotonic()
        error: KubectlError | None = None
        output = ""
        try:
            result = subprocess.run(
                [self.exe, *self.connect_args(), *args],
                input=definition,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            error = KubectlError(f"running kubectl: {exc}")
        else:
            output = result.stdout.decode("utf-8", "replace").strip()
            if result.returncode != 0:
                message = result.stderr.decode("utf-8", "replace").strip()
                error = KubectlError(f"running kubectl: {message}")
        logger.info(
            "cmd=%s took=%.3fs err=%s output=%s",
            "kubectl " + " ".join(args),
            time.monotonic() - begin,
            error,
            output,
        )
        if error is not None:
            raise error

    def delete(self, logger: Any, obj: ApiObject) -> None:
        self._do_command(
            logger, obj.data, "--namespace", obj.namespace_or_default(), "delete", "-f", "-"
        )

    def apply(self, logger: Any, obj: ApiObject) -> None:
        self._do_command(
            logger, obj.data, "--namespace", obj.namespace_or_default(), "apply", "-f", "-"
        )