"""Resource provider readiness gate.

A subscription can only create Container Apps, registries and the optional
services once the matching resource provider is ``Registered``. Registration
is asynchronous, so the gate starts it when needed and polls a bounded number
of times at a fixed interval.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from .azcli import AzureCli
from .constants import APP_NAME, PROVIDER_POLL_ATTEMPTS, PROVIDER_POLL_INTERVAL
from .exceptions import ProviderTimeoutError
from .ui import console

__all__ = [
    "CAPABILITY_NAMESPACES",
    "Capability",
    "ProviderGate",
    "ProviderState",
    "RetryPolicy",
]


class Capability(str, Enum):
    COMPUTE_HOST = "compute-host"
    REGISTRY = "registry"
    STORAGE = "storage"
    SEARCH = "search"
    AI = "ai"


CAPABILITY_NAMESPACES: dict[Capability, str] = {
    Capability.COMPUTE_HOST: "Microsoft.App",
    Capability.REGISTRY: "Microsoft.ContainerRegistry",
    Capability.STORAGE: "Microsoft.Storage",
    Capability.SEARCH: "Microsoft.Search",
    Capability.AI: "Microsoft.CognitiveServices",
}


class ProviderState(str, Enum):
    NOT_REGISTERED = "NotRegistered"
    UNREGISTERED = "Unregistered"
    REGISTERING = "Registering"
    REGISTERED = "Registered"
    UNREGISTERING = "Unregistering"


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval polling: at most ``max_attempts`` checks, ``interval`` apart."""

    max_attempts: int = PROVIDER_POLL_ATTEMPTS
    interval: float = PROVIDER_POLL_INTERVAL

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


class ProviderGate:
    """Make sure capability providers are registered before use.

    Parameters
    ----------
    az
        Control-plane boundary.
    policy
        How long to wait for a registration to complete.
    sleep
        Sleep function, replaceable in tests.
    dry_run
        Report state only; never start a registration.
    """

    def __init__(
        self,
        az: AzureCli,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ) -> None:
        self._az = az
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._dry_run = dry_run
        self._logger = structlog.get_logger(APP_NAME)

    def state(self, namespace: str) -> str:
        state = self._az.run(
            [
                "provider", "show",
                "--namespace", namespace,
                "--query", "registrationState",
            ]
        )
        return str(state)

    def ensure_ready(self, capability: Capability | str) -> None:
        namespace = CAPABILITY_NAMESPACES[Capability(capability)]
        state = self.state(namespace)
        if state == ProviderState.REGISTERED:
            console.print(f"[green]✓[/green] Provider {namespace} registered")
            return

        if self._dry_run:
            console.print(
                f"[yellow]🔸 Dry run - would register {namespace} ({state})[/yellow]"
            )
            return

        if state != ProviderState.REGISTERING:
            self._logger.info("Registering provider", namespace=namespace, state=state)
            self._az.run(["provider", "register", "--namespace", namespace])

        with console.status(f"Waiting for {namespace} registration..."):
            for attempt in range(1, self.policy.max_attempts + 1):
                self._sleep(self.policy.interval)
                state = self.state(namespace)
                self._logger.debug(
                    "Provider state", namespace=namespace, state=state, attempt=attempt
                )
                if state == ProviderState.REGISTERED:
                    console.print(f"[green]✓[/green] Provider {namespace} registered")
                    self._logger.info("Provider registered", namespace=namespace)
                    return

        raise ProviderTimeoutError(namespace, state, self.policy.max_attempts)

    def ensure_all(self, capabilities: Iterable[Capability | str]) -> None:
        for capability in capabilities:
            self.ensure_ready(capability)
