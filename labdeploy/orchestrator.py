"""Staged, idempotent provisioning of one lab environment.

Stages run strictly in order, each one blocking:

1. Providers: required resource providers are ``Registered``.
2. Registry: exists, with the admin user enabled.
3. Image: ``repository:tag`` is in the registry (built only if missing).
4. Deploy: the template is deployed with a freshly minted credential.

A local build directory and the template are checked before stage 1, so
bad local input fails the run before anything in the subscription changes.

Every create is preceded by an existence check, and all names derive from
``(account, resource group)``, so a re-run after a partial failure picks up
what is already there instead of duplicating it.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import structlog
from rich.panel import Panel

from .azcli import AzureCli
from .config import LabConfig
from .constants import (
    APP_NAME,
    OUTPUT_ENDPOINT,
    OUTPUT_HEADER_NAME,
    PARAM_CREDENTIAL,
)
from .credentials import Credential, mint
from .deployer import TemplateDeployer
from .exceptions import LabDeployError, OutputContractError, PreconditionError
from .image import ImageBuilder, check_build_context
from .models import (
    DeploymentRequest,
    DeploymentResult,
    DerivedName,
    ImageCoordinate,
    LabResult,
    ProvisioningContext,
    ResourceHandle,
    Role,
)
from .naming import derive_names
from .probe import Prober, resolve_resource_group
from .providers import Capability, ProviderGate
from .registry import RegistryProvisioner
from .source import BuildSource, GitHubBuildSource, LocalBuildSource
from .state import Stage, StateManager
from .ui import console

__all__ = ["Builder", "Deployer", "Gate", "Orchestrator", "Provisioner"]

_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}$")


# ─────────────────────────────────────────────────────────────────────────────
# CAPABILITY INTERFACES
# ─────────────────────────────────────────────────────────────────────────────


class Gate(Protocol):
    def ensure_all(self, capabilities: Iterable[Capability]) -> None: ...


class Provisioner(Protocol):
    def ensure_registry(
        self, name: str, resource_group: str, location: str
    ) -> ResourceHandle: ...


class Builder(Protocol):
    def ensure_image(self, image: ImageCoordinate, source: BuildSource) -> bool: ...


class Deployer(Protocol):
    def load_template(self, source: str) -> dict[str, Any]: ...

    def deploy(
        self, request: DeploymentRequest, template: dict[str, Any] | None = None
    ) -> DeploymentResult | None: ...


# ─────────────────────────────────────────────────────────────────────────────
# ORCHESTRATOR
# ─────────────────────────────────────────────────────────────────────────────


class Orchestrator:
    """Run one provisioning pass for a lab.

    Parameters
    ----------
    config
        Run configuration.
    az
        Control-plane boundary; defaults to the real CLI for the configured
        subscription.
    state_mgr
        Where progress is recorded; defaults to ``config.state_file``.
    sleep
        Sleep function for the provider gate.
    minter
        Credential factory.

    The remaining keyword arguments replace individual stages.
    """

    def __init__(
        self,
        config: LabConfig,
        az: AzureCli | None = None,
        *,
        state_mgr: StateManager | None = None,
        prober: Prober | None = None,
        gate: Gate | None = None,
        provisioner: Provisioner | None = None,
        builder: Builder | None = None,
        deployer: Deployer | None = None,
        sleep: Callable[[float], None] = time.sleep,
        minter: Callable[[], Credential] = mint,
    ) -> None:
        self.config = config
        self.az = az or AzureCli(subscription=config.subscription)
        self.state_mgr = state_mgr or StateManager(config.state_file)
        dry_run = config.dry_run
        self.prober = prober or Prober(self.az)
        self.gate = gate or ProviderGate(
            self.az, config.retry, sleep=sleep, dry_run=dry_run
        )
        self.provisioner = provisioner or RegistryProvisioner(
            self.az, self.prober, dry_run=dry_run
        )
        self.builder = builder or ImageBuilder(self.az, self.prober, dry_run=dry_run)
        self.deployer = deployer or TemplateDeployer(self.az, dry_run=dry_run)
        self._minter = minter
        self._logger = structlog.get_logger(APP_NAME)

    # ─── Context ───

    def _resolve_context(self) -> ProvisioningContext:
        account = self.az.account()
        account_id = account["id"]
        console.print(
            f"[green]✓[/green] Subscription: {account.get('name', account_id)}"
            f" [dim]({account_id})[/dim]"
        )
        group = resolve_resource_group(
            self.prober,
            self.config.group_policy,
            name=self.config.resource_group,
            name_filter=self.config.group_filter,
            location=self.config.location,
            interactive=self.config.interactive,
        )
        region = self.config.location or self.prober.group_location(group)
        if not region:
            raise PreconditionError(f"Could not determine a region for {group}")
        console.print(f"[green]✓[/green] Resource group: [cyan]{group}[/cyan] ({region})")
        return ProvisioningContext(
            account_id=account_id,
            group_id=group,
            region=region,
            repo=self.config.repo,
            image_repository=self.config.image_repository,
            image_tag=self.config.image_tag,
        )

    def _build_source(self, ctx: ProvisioningContext) -> BuildSource:
        if self.config.source_dir:
            return LocalBuildSource(self.config.source_dir)
        return GitHubBuildSource(ctx.repo)

    def _lab_user_object_id(self) -> str | None:
        user = self.config.lab_user
        if not user:
            return None
        if _GUID_RE.match(user):
            return user
        object_id = self.az.run(
            ["ad", "user", "show", "--id", user, "--query", "id"], scoped=False
        )
        if not object_id:
            raise PreconditionError(f"Could not resolve lab user {user}")
        return str(object_id)

    def build_request(
        self,
        ctx: ProvisioningContext,
        names: dict[Role, DerivedName],
        registry: ResourceHandle,
        credential: Credential,
        lab_user_object_id: str | None = None,
    ) -> DeploymentRequest:
        parameters: dict[str, Any] = {
            "location": ctx.region,
            "registryName": registry.name,
            "imageRepository": ctx.image_repository,
            "imageTag": ctx.image_tag,
            "environmentName": names[Role.ENV].value,
            "containerAppName": names[Role.APP].value,
            PARAM_CREDENTIAL: credential.value,
            "deployStorage": self.config.with_storage,
            "deploySearch": self.config.with_search,
            "deployOpenAI": self.config.with_ai,
        }
        if lab_user_object_id:
            parameters["labUserObjectId"] = lab_user_object_id
        return DeploymentRequest(
            template_source=self.config.template,
            parameters=parameters,
            deployment_name=f"labdeploy-{names[Role.APP].value}",
            resource_group=ctx.group_id,
        )

    # ─── Run ───

    def run(self) -> LabResult | None:
        """Provision everything; return ``None`` only for a dry run.

        The first fatal error is recorded in the state file and re-raised.
        """
        try:
            return self._run()
        except LabDeployError as e:
            self.state_mgr.set_failed(str(e))
            self._logger.error("Provisioning failed", error=str(e))
            raise
        except KeyboardInterrupt:
            self.state_mgr.set_failed("Interrupted")
            self._logger.warning("Provisioning interrupted")
            raise

    def _check_local_inputs(self) -> dict[str, Any]:
        """Everything that can fail without the cloud, before anything changes."""
        if self.config.source_dir:
            check_build_context(self.config.source_dir)
        return self.deployer.load_template(self.config.template)

    def _run(self) -> LabResult | None:
        template = self._check_local_inputs()
        lab_user = self._lab_user_object_id()
        ctx = self._resolve_context()
        names = derive_names(ctx.account_id, ctx.group_id)
        registry_name = names[Role.REGISTRY].value
        image = ImageCoordinate(registry_name, ctx.image_repository, ctx.image_tag)
        log = self._logger.bind(group=ctx.group_id, region=ctx.region)
        log.info("Run started", registry=registry_name, image=image.reference)
        self.state_mgr.update(
            account_id=ctx.account_id,
            resource_group=ctx.group_id,
            region=ctx.region,
            registry_name=registry_name,
            environment_name=names[Role.ENV].value,
            app_name=names[Role.APP].value,
            image=image.reference,
        )

        console.print(Panel("[bold]Stage 1: Resource Providers[/bold]", border_style="blue"))
        self.gate.ensure_all(self.config.capabilities)
        self.state_mgr.set_stage(Stage.PROVIDERS_READY)

        console.print(Panel("[bold]Stage 2: Container Registry[/bold]", border_style="blue"))
        handle = self.provisioner.ensure_registry(registry_name, ctx.group_id, ctx.region)
        self.state_mgr.set_stage(Stage.REGISTRY_READY)

        console.print(Panel("[bold]Stage 3: Server Image[/bold]", border_style="blue"))
        self.builder.ensure_image(image, self._build_source(ctx))
        self.state_mgr.set_stage(Stage.IMAGE_READY)

        console.print(Panel("[bold]Stage 4: Lab Deployment[/bold]", border_style="blue"))
        credential = self._minter()
        request = self.build_request(ctx, names, handle, credential, lab_user)
        result = self.deployer.deploy(request, template)
        if result is None:
            log.info("Dry run finished")
            return None

        try:
            lab = LabResult(
                endpoint=result.outputs[OUTPUT_ENDPOINT],
                header_name=result.outputs[OUTPUT_HEADER_NAME],
                credential=credential,
            )
        except KeyError as e:
            raise OutputContractError(f"Deployment output {e} missing") from e
        self.state_mgr.update(endpoint=lab.endpoint, header_name=lab.header_name)
        self.state_mgr.set_stage(Stage.DEPLOYED)
        log.info("Run finished", endpoint=lab.endpoint)
        return lab
