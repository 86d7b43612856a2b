"""Create-or-update for the lab's container registry."""

from __future__ import annotations

import structlog

from .azcli import AzureCli
from .constants import APP_NAME
from .models import ResourceHandle
from .probe import Prober
from .ui import console

__all__ = ["RegistryProvisioner"]


class RegistryProvisioner:
    """Converge the registry to "exists with the admin user enabled".

    The container app pulls with the registry's admin credential, so that
    capability is part of the end state, not an optional extra.
    """

    def __init__(
        self, az: AzureCli, prober: Prober, *, sku: str = "Basic", dry_run: bool = False
    ) -> None:
        self._az = az
        self._prober = prober
        self._sku = sku
        self._dry_run = dry_run
        self._logger = structlog.get_logger(APP_NAME)

    def ensure_registry(
        self, name: str, resource_group: str, location: str
    ) -> ResourceHandle:
        doc = self._prober.show("registry", name, resource_group)

        if doc is None:
            handle = ResourceHandle(name=name, exists=False)
            if self._dry_run:
                console.print(f"[yellow]🔸 Dry run - would create registry {name}[/yellow]")
                return handle
            console.print(f"[cyan]→ az acr create --name {name} --sku {self._sku}[/cyan]")
            doc = self._az.run(
                [
                    "acr", "create",
                    "--name", name,
                    "--resource-group", resource_group,
                    "--location", location,
                    "--sku", self._sku,
                    "--admin-enabled", "true",
                ]
            ) or {}
            handle.created = True
            handle.admin_enabled = True
            handle.login_server = doc.get("loginServer", "")
            self._logger.info("Registry created", registry=name, group=resource_group)
            console.print(f"[green]✓[/green] Registry created: [cyan]{name}[/cyan]")
        else:
            handle = ResourceHandle(
                name=name,
                exists=True,
                admin_enabled=bool(doc.get("adminUserEnabled")),
                login_server=doc.get("loginServer", ""),
            )
            console.print(f"[green]✓[/green] Registry exists: [cyan]{name}[/cyan]")

        if not handle.admin_enabled:
            self._enable_admin(handle, resource_group)

        if not handle.login_server:
            handle.login_server = f"{name}.azurecr.io"
        return handle

    def _enable_admin(self, handle: ResourceHandle, resource_group: str) -> None:
        if self._dry_run:
            console.print(
                f"[yellow]🔸 Dry run - would enable admin user on {handle.name}[/yellow]"
            )
            return
        console.print(f"[cyan]→ az acr update --name {handle.name} --admin-enabled true[/cyan]")
        self._az.run(
            [
                "acr", "update",
                "--name", handle.name,
                "--resource-group", resource_group,
                "--admin-enabled", "true",
            ]
        )
        handle.admin_enabled = True
        self._logger.info("Registry admin user enabled", registry=handle.name)
