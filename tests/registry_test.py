"""Tests for the registry create-or-update."""

import pytest

from labdeploy import registry
from labdeploy.probe import Prober
from labdeploy.registry import RegistryProvisioner

from .support.fake_az import FakeCloud


def _provisioner(cloud: FakeCloud, **kwargs: bool) -> RegistryProvisioner:
    return RegistryProvisioner(cloud, Prober(cloud), **kwargs)


def test_absent_registry_is_created(cloud: FakeCloud) -> None:
    handle = _provisioner(cloud).ensure_registry("labacr0", "rg-456", "eastus")
    assert handle.created
    assert not handle.exists
    assert handle.admin_enabled
    assert handle.login_server == "labacr0.azurecr.io"
    assert cloud.mutations() == [("acr", "create")]
    create = cloud.calls_to("acr", "create")[0]
    assert create[create.index("--admin-enabled") + 1] == "true"


def test_admin_disabled_is_enabled(cloud: FakeCloud) -> None:
    cloud.add_registry("labacr0", "rg-456", admin=False)
    handle = _provisioner(cloud).ensure_registry("labacr0", "rg-456", "eastus")
    assert handle.exists
    assert not handle.created
    assert handle.admin_enabled
    assert cloud.mutations() == [("acr", "update")]
    assert cloud.registries["labacr0"]["adminUserEnabled"] is True


def test_ready_registry_is_untouched(cloud: FakeCloud) -> None:
    cloud.add_registry("labacr0", "rg-456", admin=True)
    provisioner = _provisioner(cloud)
    first = provisioner.ensure_registry("labacr0", "rg-456", "eastus")
    second = provisioner.ensure_registry("labacr0", "rg-456", "eastus")
    assert first == second
    assert cloud.mutations() == []


def test_rerun_converges(cloud: FakeCloud) -> None:
    provisioner = _provisioner(cloud)
    provisioner.ensure_registry("labacr0", "rg-456", "eastus")
    handle = provisioner.ensure_registry("labacr0", "rg-456", "eastus")
    assert handle.exists and handle.admin_enabled
    assert cloud.mutations() == [("acr", "create")]


def test_dry_run(cloud: FakeCloud, monkeypatch: pytest.MonkeyPatch) -> None:
    printed: list[str] = []
    monkeypatch.setattr(registry.console, "print", lambda msg, **kw: printed.append(msg))
    handle = _provisioner(cloud, dry_run=True).ensure_registry("labacr0", "rg-456", "eastus")
    assert not handle.exists
    assert cloud.mutations() == []
    assert len(printed) == 1
    assert "would create registry labacr0" in printed[0]
