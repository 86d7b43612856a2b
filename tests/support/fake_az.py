"""Fake Azure control plane for tests.

``FakeAzureCli`` answers ``az`` argument lists from registered prefix
handlers and records every call. ``FakeCloud`` builds on it with a small
in-memory subscription (groups, providers, registries, tags, deployments),
so a whole provisioning run can be replayed and re-run against it.
"""

from __future__ import annotations

import copy
import json
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from labdeploy.exceptions import CommandFailedError, ResourceNotFoundError

Handler = Callable[[list[str]], Any]

MUTATING = (
    ("group", "create"),
    ("provider", "register"),
    ("acr", "create"),
    ("acr", "update"),
    ("acr", "build"),
    ("deployment", "group", "create"),
)


def not_found(args: Sequence[str], what: str = "resource") -> ResourceNotFoundError:
    exc = subprocess.CalledProcessError(
        3, list(args), "", f"ERROR: (ResourceNotFound) The {what} was not found."
    )
    return ResourceNotFoundError(args, exc)


def failure(args: Sequence[str], stderr: str, returncode: int = 1) -> CommandFailedError:
    exc = subprocess.CalledProcessError(returncode, list(args), "", stderr)
    return CommandFailedError(args, exc)


def arg(args: Sequence[str], flag: str) -> str:
    return args[list(args).index(flag) + 1]


class FakeAzureCli:
    """Prefix-matched canned responses, with a call log."""

    def __init__(self, subscription: str | None = "sub-123") -> None:
        self.subscription = subscription
        self.calls: list[list[str]] = []
        self._handlers: list[tuple[tuple[str, ...], Handler]] = []

    def on(
        self,
        *prefix: str,
        result: Any = None,
        error: Exception | None = None,
        handler: Handler | None = None,
    ) -> None:
        """Answer calls starting with ``prefix``; later registrations win ties."""
        if handler is None:
            def handler(args: list[str]) -> Any:
                if error is not None:
                    raise error
                return copy.deepcopy(result)
        self._handlers.insert(0, (prefix, handler))

    def run(self, args: Sequence[str], *, scoped: bool = True) -> Any:
        args = list(args)
        self.calls.append(args)
        matches = [
            (prefix, handler)
            for prefix, handler in self._handlers
            if tuple(args[: len(prefix)]) == prefix
        ]
        if not matches:
            raise AssertionError(f"Unexpected az call: {args}")
        _, handler = max(matches, key=lambda m: len(m[0]))
        return handler(args)

    def version(self) -> str:
        return "2.61.0"

    def account(self) -> dict[str, Any]:
        return self.run(["account", "show"])

    def calls_to(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    def mutations(self) -> list[tuple[str, ...]]:
        """Mutating calls in order, as their command words."""
        found = []
        for call in self.calls:
            for verb in MUTATING:
                if tuple(call[: len(verb)]) == verb:
                    found.append(verb)
        return found


class FakeCloud(FakeAzureCli):
    """An in-memory subscription behind the fake CLI."""

    def __init__(
        self,
        account_id: str = "sub-123",
        groups: dict[str, str] | None = None,
        *,
        providers: dict[str, str] | None = None,
        register_polls: int = 1,
    ) -> None:
        super().__init__(subscription=account_id)
        self.account_id = account_id
        self.groups = dict(groups or {})
        self.providers = dict(providers or {})
        self.register_polls = register_polls
        self._pending: dict[str, int] = {}
        self.registries: dict[str, dict[str, Any]] = {}
        self.tags: dict[tuple[str, str], list[str]] = {}
        self.deployments: list[dict[str, Any]] = []
        self.outputs: dict[str, Any] | None = None
        self.build_error: str | None = None

        self.on("account", "show", handler=self._account)
        self.on("group", "show", handler=self._group_show)
        self.on("group", "list", handler=self._group_list)
        self.on("group", "create", handler=self._group_create)
        self.on("provider", "show", handler=self._provider_show)
        self.on("provider", "register", handler=self._provider_register)
        self.on("acr", "show", handler=self._acr_show)
        self.on("acr", "create", handler=self._acr_create)
        self.on("acr", "update", handler=self._acr_update)
        self.on("acr", "repository", "show-tags", handler=self._show_tags)
        self.on("acr", "build", handler=self._acr_build)
        self.on("deployment", "group", "validate", handler=self._validate)
        self.on("deployment", "group", "create", handler=self._deploy)

    # ─── Seeding ───

    def add_registry(self, name: str, group: str, *, admin: bool = True) -> None:
        self.registries[name] = {
            "name": name,
            "resourceGroup": group,
            "adminUserEnabled": admin,
            "loginServer": f"{name}.azurecr.io",
        }

    def add_tag(self, registry: str, repository: str, tag: str) -> None:
        self.tags.setdefault((registry, repository), []).append(tag)

    def register_all(self, *namespaces: str) -> None:
        for ns in namespaces:
            self.providers[ns] = "Registered"

    # ─── Handlers ───

    def _account(self, args: list[str]) -> dict[str, Any]:
        return {
            "id": self.account_id,
            "name": "Lab Subscription",
            "user": {"name": "student@example.edu"},
        }

    def _group_show(self, args: list[str]) -> dict[str, Any]:
        name = arg(args, "--name")
        for group, location in self.groups.items():
            if group.lower() == name.lower():
                return {"name": group, "location": location}
        raise not_found(args, "resource group")

    def _group_list(self, args: list[str]) -> list[dict[str, Any]]:
        return [{"name": g, "location": loc} for g, loc in self.groups.items()]

    def _group_create(self, args: list[str]) -> dict[str, Any]:
        self.groups[arg(args, "--name")] = arg(args, "--location")
        return {"name": arg(args, "--name")}

    def _provider_show(self, args: list[str]) -> str:
        ns = arg(args, "--namespace")
        if ns in self._pending:
            self._pending[ns] -= 1
            if self._pending[ns] <= 0:
                del self._pending[ns]
                self.providers[ns] = "Registered"
        return self.providers.get(ns, "NotRegistered")

    def _provider_register(self, args: list[str]) -> None:
        ns = arg(args, "--namespace")
        self.providers[ns] = "Registering"
        self._pending[ns] = self.register_polls
        return None

    def _acr_show(self, args: list[str]) -> dict[str, Any]:
        name = arg(args, "--name")
        if name not in self.registries:
            raise not_found(args, "registry")
        return self.registries[name]

    def _acr_create(self, args: list[str]) -> dict[str, Any]:
        self.add_registry(
            arg(args, "--name"),
            arg(args, "--resource-group"),
            admin=arg(args, "--admin-enabled") == "true",
        )
        return self.registries[arg(args, "--name")]

    def _acr_update(self, args: list[str]) -> dict[str, Any]:
        registry = self.registries[arg(args, "--name")]
        registry["adminUserEnabled"] = arg(args, "--admin-enabled") == "true"
        return registry

    def _show_tags(self, args: list[str]) -> list[str]:
        key = (arg(args, "--name"), arg(args, "--repository"))
        if key not in self.tags:
            raise not_found(args, "repository")
        return list(self.tags[key])

    def _acr_build(self, args: list[str]) -> dict[str, Any]:
        if self.build_error is not None:
            raise failure(args, self.build_error)
        repository, tag = arg(args, "--image").split(":", 1)
        self.add_tag(arg(args, "--registry"), repository, tag)
        return {"status": "Succeeded"}

    def _parameters(self, args: list[str]) -> dict[str, Any]:
        ref = arg(args, "--parameters")
        doc = json.loads(Path(ref.lstrip("@")).read_text())
        return {k: v["value"] for k, v in doc["parameters"].items()}

    def _validate(self, args: list[str]) -> dict[str, Any]:
        self._parameters(args)
        return {"properties": {"provisioningState": "Succeeded"}}

    def _deploy(self, args: list[str]) -> dict[str, Any]:
        parameters = self._parameters(args)
        self.deployments.append(
            {
                "name": arg(args, "--name"),
                "resource_group": arg(args, "--resource-group"),
                "parameters": parameters,
            }
        )
        outputs = self.outputs
        if outputs is None:
            outputs = {
                "apiBaseUrl": {
                    "type": "String",
                    "value": f"https://{parameters['containerAppName']}"
                    ".happyhill-1234.eastus.azurecontainerapps.io",
                },
                "apiKeyHeaderName": {"type": "String", "value": "x-mcp-api-key"},
            }
        return {
            "name": arg(args, "--name"),
            "properties": {"provisioningState": "Succeeded", "outputs": outputs},
        }
