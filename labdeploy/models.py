"""Values passed between the provisioning steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .credentials import Credential


class Role(str, Enum):
    """Logical role of a derived resource name."""

    REGISTRY = "registry"
    ENV = "env"
    APP = "app"


class DeploymentState(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RepoCoordinates:
    """GitHub repository holding the lab server sources."""

    owner: str
    name: str
    branch: str = "main"

    @classmethod
    def parse(cls, value: str, branch: str | None = None) -> RepoCoordinates:
        """Parse ``owner/name`` or ``owner/name@branch``."""
        ref = None
        if "@" in value:
            value, ref = value.split("@", 1)
        owner, sep, name = value.strip().strip("/").partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Repository must be owner/name, not {value!r}")
        return cls(owner=owner, name=name, branch=branch or ref or "main")

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}@{self.branch}"


@dataclass(frozen=True)
class ProvisioningContext:
    account_id: str
    group_id: str
    region: str
    repo: RepoCoordinates
    image_repository: str
    image_tag: str


@dataclass(frozen=True)
class DerivedName:
    role: Role
    value: str
    max_length: int
    charset: str


@dataclass
class ResourceHandle:
    """Reference to a resource the deployment consumes as ``existing``."""

    name: str
    exists: bool
    admin_enabled: bool = False
    login_server: str = ""
    created: bool = False


@dataclass(frozen=True)
class ImageCoordinate:
    registry: str
    repository: str
    tag: str

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass(frozen=True)
class DeploymentRequest:
    template_source: str
    parameters: dict[str, Any]
    deployment_name: str
    resource_group: str


@dataclass(frozen=True)
class DeploymentResult:
    state: DeploymentState
    outputs: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LabResult:
    """What the student receives at the end of a run."""

    endpoint: str
    header_name: str
    credential: Credential
