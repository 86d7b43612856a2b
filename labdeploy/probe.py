"""Existence checks against the control plane, and resource-group resolution."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum

import questionary
import structlog

from .azcli import AzureCli
from .constants import APP_NAME, DEFAULT_RESOURCE_GROUP
from .exceptions import (
    AmbiguousResourceGroupError,
    NotLoggedInError,
    PreconditionError,
    ResourceGroupNotFoundError,
    ResourceNotFoundError,
)
from .ui import PROMPT_STYLE, console

__all__ = ["GroupPolicy", "Prober", "resolve_resource_group"]


class GroupPolicy(str, Enum):
    """How the target resource group is chosen."""

    EXPLICIT = "explicit"
    SEARCH = "search"
    DEFAULT = "default"


_SHOW_COMMANDS: dict[str, Callable[[str, str | None], list[str]]] = {
    "group": lambda name, scope: ["group", "show", "--name", name],
    "registry": lambda name, scope: [
        "acr", "show", "--name", name, "--resource-group", str(scope),
    ],
    "environment": lambda name, scope: [
        "containerapp", "env", "show", "--name", name,
        "--resource-group", str(scope),
    ],
    "app": lambda name, scope: [
        "containerapp", "show", "--name", name, "--resource-group", str(scope),
    ],
}


class Prober:
    """Ask the control plane whether named resources exist."""

    def __init__(self, az: AzureCli) -> None:
        self._az = az
        self._logger = structlog.get_logger(APP_NAME)

    def show(self, kind: str, name: str, scope: str | None = None) -> dict | None:
        """Return the resource document, or ``None`` if it does not exist.

        Transport, auth and other failures propagate.
        """
        try:
            build = _SHOW_COMMANDS[kind]
        except KeyError:
            raise ValueError(f"Unknown resource kind {kind!r}") from None
        if kind != "group" and not scope:
            raise ValueError(f"A resource group is required to look up {kind}")
        try:
            doc = self._az.run(build(name, scope))
        except ResourceNotFoundError:
            self._logger.info("Resource absent", kind=kind, name=name, scope=scope)
            return None
        self._logger.info("Resource present", kind=kind, name=name, scope=scope)
        return doc if isinstance(doc, dict) else {}

    def exists(self, kind: str, name: str, scope: str | None = None) -> bool:
        return self.show(kind, name, scope) is not None

    def account_id(self) -> str:
        return self._az.account()["id"]

    def signed_in(self) -> bool:
        try:
            self._az.account()
        except NotLoggedInError:
            return False
        return True

    def group_location(self, name: str) -> str:
        doc = self.show("group", name)
        if doc is None:
            raise ResourceGroupNotFoundError(f"Resource group {name} not found")
        return doc.get("location", "")

    def list_groups(self) -> list[str]:
        groups = self._az.run(["group", "list"]) or []
        return [g["name"] for g in groups]

    def list_tags(self, registry: str, repository: str) -> list[str]:
        """Tags of ``repository``; a repository that was never pushed has none."""
        try:
            tags = self._az.run(
                [
                    "acr", "repository", "show-tags",
                    "--name", registry,
                    "--repository", repository,
                ]
            )
        except ResourceNotFoundError:
            return []
        return list(tags or [])

    def create_group(self, name: str, location: str) -> None:
        self._az.run(["group", "create", "--name", name, "--location", location])
        self._logger.info("Resource group created", name=name, location=location)


def _pick(candidates: Sequence[str], interactive: bool) -> str:
    if not interactive:
        raise AmbiguousResourceGroupError(candidates)
    choice = questionary.select(
        "Several resource groups match. Which one is your lab group?",
        choices=sorted(candidates),
        style=PROMPT_STYLE,
    ).ask()
    if not choice:
        raise AmbiguousResourceGroupError(candidates)
    return choice


def resolve_resource_group(
    prober: Prober,
    policy: GroupPolicy,
    *,
    name: str | None = None,
    name_filter: str | None = None,
    location: str | None = None,
    interactive: bool = False,
) -> str:
    """Settle on one resource group for the run.

    An exact name match beats substring matches; several equally good
    candidates need the operator to choose (interactively, or by passing
    the name explicitly). Nothing is picked silently.
    """
    if policy is GroupPolicy.EXPLICIT:
        if not name:
            raise PreconditionError("--resource-group is required")
        if not prober.exists("group", name):
            raise ResourceGroupNotFoundError(f"Resource group {name} not found")
        return name

    if policy is GroupPolicy.SEARCH:
        needle = (name_filter or name or "").lower()
        if not needle:
            raise PreconditionError("--group-filter is required to search")
        candidates = [g for g in prober.list_groups() if needle in g.lower()]
        exact = [g for g in candidates if g.lower() == needle]
        if exact:
            return exact[0]
        if not candidates:
            raise ResourceGroupNotFoundError(
                f"No resource group name contains {needle!r}"
            )
        if len(candidates) == 1:
            console.print(f"[green]✓[/green] Resource group: [cyan]{candidates[0]}[/cyan]")
            return candidates[0]
        return _pick(candidates, interactive)

    group = name or DEFAULT_RESOURCE_GROUP
    if prober.exists("group", group):
        return group
    if not location:
        raise ResourceGroupNotFoundError(
            f"Resource group {group} not found and no --location to create it"
        )
    console.print(f"[dim]Creating resource group {group} in {location}...[/dim]")
    prober.create_group(group, location)
    return group
