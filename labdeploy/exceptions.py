"""Exceptions raised while provisioning a lab environment."""

from __future__ import annotations

import subprocess
from collections.abc import Iterable
from shlex import join

__all__ = [
    "AmbiguousResourceGroupError",
    "AzureCliMissingError",
    "BuildContextError",
    "CommandFailedError",
    "CommandTimedOutError",
    "DeploymentFailedError",
    "ImageBuildError",
    "InvalidNameInputError",
    "LabDeployError",
    "MissingParameterError",
    "NotLoggedInError",
    "OutputContractError",
    "PreconditionError",
    "ProviderTimeoutError",
    "RemoteOperationError",
    "ResourceGroupNotFoundError",
    "ResourceNotFoundError",
    "TemplateValidationError",
]


class LabDeployError(Exception):
    """Base class for every fatal provisioning error."""


# ─────────────────────────────────────────────────────────────────────────────
# PRECONDITIONS (raised before any remote mutation)
# ─────────────────────────────────────────────────────────────────────────────


class PreconditionError(LabDeployError):
    """A local prerequisite for the run is missing or invalid."""


class InvalidNameInputError(PreconditionError):
    """An input to name derivation contains characters we refuse to hash."""


class AmbiguousResourceGroupError(PreconditionError):
    """Several resource groups match and nobody picked one.

    Parameters
    ----------
    candidates
        Names of the matching resource groups.
    """

    def __init__(self, candidates: Iterable[str]) -> None:
        self.candidates = sorted(candidates)
        super().__init__(
            "Several resource groups match: "
            + ", ".join(self.candidates)
            + ". Pass --resource-group to choose one."
        )


class ResourceGroupNotFoundError(PreconditionError):
    """No resource group could be resolved for the run."""


class BuildContextError(PreconditionError):
    """The image build context is missing its descriptor or sources."""


class MissingParameterError(PreconditionError):
    """A deployment parameter set is incomplete or has unknown keys."""

    def __init__(
        self, missing: Iterable[str], unknown: Iterable[str] = ()
    ) -> None:
        self.missing = sorted(missing)
        self.unknown = sorted(unknown)
        parts = []
        if self.missing:
            parts.append("missing " + ", ".join(self.missing))
        if self.unknown:
            parts.append("unknown " + ", ".join(self.unknown))
        super().__init__("Deployment parameters rejected: " + "; ".join(parts))


class TemplateValidationError(PreconditionError):
    """The deployment template failed static validation."""


class AzureCliMissingError(PreconditionError):
    """The ``az`` executable could not be found."""


class NotLoggedInError(PreconditionError):
    """The Azure CLI has no usable login."""


# ─────────────────────────────────────────────────────────────────────────────
# TRANSIENT ERRORS PROMOTED TO FATAL
# ─────────────────────────────────────────────────────────────────────────────


class ProviderTimeoutError(LabDeployError):
    """A resource provider did not reach ``Registered`` in time."""

    def __init__(self, namespace: str, state: str, attempts: int) -> None:
        self.namespace = namespace
        self.state = state
        self.attempts = attempts
        super().__init__(
            f"Provider {namespace} still {state} after {attempts} checks"
        )


# ─────────────────────────────────────────────────────────────────────────────
# REMOTE OPERATION FAILURES
# ─────────────────────────────────────────────────────────────────────────────


class RemoteOperationError(LabDeployError):
    """The control plane rejected or failed an operation."""


class CommandFailedError(RemoteOperationError):
    """Execution of a control-plane command failed.

    Parameters
    ----------
    args
        Command (args[0]) and arguments to that command.
    exc
        Exception reporting the failure.

    Attributes
    ----------
    stdout
        Standard output from the failed command.
    stderr
        Standard error from the failed command.
    """

    def __init__(
        self,
        args: Iterable[str],
        exc: subprocess.CalledProcessError,
    ) -> None:
        self.command = list(args)
        self.returncode = exc.returncode
        self.stdout = exc.stdout or ""
        self.stderr = exc.stderr or ""
        msg = f"'{join(self.command)}' failed with status {exc.returncode}"
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ResourceNotFoundError(CommandFailedError):
    """The control plane reported that the resource does not exist."""


class CommandTimedOutError(RemoteOperationError):
    """Execution of a control-plane command timed out."""

    def __init__(
        self,
        args: Iterable[str],
        exc: subprocess.TimeoutExpired,
    ) -> None:
        self.command = list(args)
        self.stdout = exc.stdout
        self.stderr = exc.stderr
        super().__init__(f"'{join(self.command)}' timed out after {exc.timeout}s")


class ImageBuildError(RemoteOperationError):
    """The remote image build failed; carries the build service's output."""


class DeploymentFailedError(RemoteOperationError):
    """The template deployment reached a terminal state other than success."""


# ─────────────────────────────────────────────────────────────────────────────
# OUTPUT CONTRACT
# ─────────────────────────────────────────────────────────────────────────────


class OutputContractError(LabDeployError):
    """A successful deployment did not yield the outputs we rely on."""
