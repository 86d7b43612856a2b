"""Boundary to the Azure control plane.

Every query and mutation goes through :class:`AzureCli`, which runs the
``az`` executable and turns its outcome into parsed JSON, a "not found"
error, or a command failure.
"""

from __future__ import annotations

import json
import re
import subprocess
from collections.abc import Sequence
from typing import Any

import structlog

from .constants import APP_NAME
from .exceptions import (
    AzureCliMissingError,
    CommandFailedError,
    CommandTimedOutError,
    NotLoggedInError,
    ResourceNotFoundError,
)

__all__ = ["AzureCli", "is_not_found"]

_NOT_FOUND_RE = re.compile(
    r"ResourceNotFound|ResourceGroupNotFound|could not be found"
    r"|was not found|is not found|requested data does not exist",
    re.IGNORECASE,
)


def is_not_found(stderr: str) -> bool:
    """Does this ``az`` error output mean the resource is absent?"""
    return bool(_NOT_FOUND_RE.search(stderr or ""))


class AzureCli:
    """Run ``az`` commands against one subscription.

    Parameters
    ----------
    subscription
        Subscription id or name passed with ``--subscription`` to every
        scoped command, so nothing depends on the CLI's current account.
    executable
        Name or path of the Azure CLI.
    timeout
        Seconds before a single command is abandoned; ``None`` waits forever,
        which is what long builds and deployments need.
    """

    def __init__(
        self,
        subscription: str | None = None,
        executable: str = "az",
        timeout: float | None = None,
    ) -> None:
        self.subscription = subscription
        self.executable = executable
        self.timeout = timeout
        self._logger = structlog.get_logger(APP_NAME)

    def command(self, args: Sequence[str], *, scoped: bool = True) -> list[str]:
        cmd = [self.executable, *args, "--only-show-errors", "--output", "json"]
        if scoped and self.subscription:
            cmd.extend(["--subscription", self.subscription])
        return cmd

    def run(self, args: Sequence[str], *, scoped: bool = True) -> Any:
        """Run one command and return its parsed JSON output.

        Raises
        ------
        ResourceNotFoundError
            The control plane says the target does not exist.
        CommandFailedError
            Any other non-zero exit.
        CommandTimedOutError
            The command exceeded ``timeout``.
        AzureCliMissingError
            ``az`` is not installed.
        """
        cmd = self.command(args, scoped=scoped)
        self._logger.debug("Running az command", args=list(args))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise AzureCliMissingError(
                f"Azure CLI '{self.executable}' not found; install it from"
                " https://aka.ms/installazurecli"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimedOutError(cmd, exc) from exc
        except subprocess.CalledProcessError as exc:
            if is_not_found(exc.stderr):
                raise ResourceNotFoundError(cmd, exc) from exc
            raise CommandFailedError(cmd, exc) from exc
        output = proc.stdout.strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            # A few commands (e.g. ``bicep build --stdout``) print plain text
            # around the document; hand it back untouched.
            return output

    def version(self) -> str:
        data = self.run(["version"], scoped=False)
        return data.get("azure-cli", "unknown") if isinstance(data, dict) else "unknown"

    def account(self) -> dict[str, Any]:
        """Return the account the CLI will act as."""
        try:
            data = self.run(["account", "show"])
        except CommandFailedError as exc:
            if "az login" in exc.stderr:
                raise NotLoggedInError(
                    "Azure CLI is not logged in; run 'az login' first"
                ) from exc
            raise
        if not isinstance(data, dict) or "id" not in data:
            raise NotLoggedInError("Azure CLI returned no account")
        return data
