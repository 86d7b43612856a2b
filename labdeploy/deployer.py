"""Template deployment: validate locally, submit, wait, read outputs.

The template is compiled to ARM JSON up front so that its parameter and
output contract can be checked before anything is sent to the control
plane. The deployment itself is left to the platform's engine, which
decides what actually changes on a re-run.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

import structlog

from .azcli import AzureCli
from .constants import (
    APP_NAME,
    EXPECTED_OUTPUTS,
    OUTPUT_ENDPOINT,
    REQUIRED_PARAMETERS,
)
from .exceptions import (
    CommandFailedError,
    DeploymentFailedError,
    MissingParameterError,
    OutputContractError,
    TemplateValidationError,
)
from .models import DeploymentRequest, DeploymentResult, DeploymentState
from .source import download
from .ui import console

__all__ = ["TemplateDeployer", "check_parameters", "validate_template"]

PARAMETERS_SCHEMA = (
    "https://schema.management.azure.com/schemas/2019-04-01/"
    "deploymentParameters.json#"
)


def validate_template(
    template: Any, expected_outputs: Iterable[str] = EXPECTED_OUTPUTS
) -> None:
    """Structural checks on a compiled ARM template."""
    if not isinstance(template, dict):
        raise TemplateValidationError("Template is not a JSON object")
    schema = template.get("$schema", "")
    if "deploymentTemplate" not in schema:
        raise TemplateValidationError(f"Unexpected template $schema {schema!r}")
    if not template.get("resources"):
        raise TemplateValidationError("Template declares no resources")
    if not isinstance(template.get("parameters", {}), dict):
        raise TemplateValidationError("Template parameters must be an object")
    outputs = template.get("outputs")
    if not isinstance(outputs, dict):
        raise TemplateValidationError("Template declares no outputs")
    missing = [key for key in expected_outputs if key not in outputs]
    if missing:
        raise TemplateValidationError(
            "Template does not declare outputs: " + ", ".join(missing)
        )


def check_parameters(
    template: dict[str, Any],
    parameters: dict[str, Any],
    required: Iterable[str] = REQUIRED_PARAMETERS,
) -> None:
    """Fail fast, locally, on an incomplete or unexpected parameter set."""
    declared = template.get("parameters", {})
    needed = set(required) | {
        name for name, decl in declared.items() if "defaultValue" not in decl
    }
    missing = {
        name for name in needed if parameters.get(name) in (None, "")
    }
    unknown = set(parameters) - set(declared)
    if missing or unknown:
        raise MissingParameterError(missing, unknown)


class TemplateDeployer:
    """Deploy the lab template into a resource group.

    Parameters
    ----------
    az
        Control-plane boundary.
    expected_outputs
        Output keys the run relies on; any of them missing is fatal.
    dry_run
        Stop after local and platform validation.
    """

    def __init__(
        self,
        az: AzureCli,
        *,
        expected_outputs: Iterable[str] = EXPECTED_OUTPUTS,
        dry_run: bool = False,
    ) -> None:
        self._az = az
        self._expected = tuple(expected_outputs)
        self._dry_run = dry_run
        self._logger = structlog.get_logger(APP_NAME)

    # ─────────────────────────────────────────────────────────────────────────
    # PHASE 1: FETCH AND VALIDATE
    # ─────────────────────────────────────────────────────────────────────────

    @contextmanager
    def _fetch(self, source: str) -> Iterator[Path]:
        if source.startswith("https://"):
            with TemporaryDirectory(prefix="labdeploy-template-") as tmp:
                name = source.rsplit("/", 1)[-1].split("?", 1)[0] or "template.json"
                yield download(source, Path(tmp) / name)
            return
        path = Path(source)
        if not path.is_file():
            raise TemplateValidationError(f"Template {source} not found")
        yield path

    def _compile(self, path: Path) -> dict[str, Any]:
        if path.suffix == ".bicep":
            console.print(f"[dim]Compiling {path.name}...[/dim]")
            try:
                compiled = self._az.run(
                    ["bicep", "build", "--file", str(path), "--stdout"],
                    scoped=False,
                )
            except CommandFailedError as e:
                raise TemplateValidationError(
                    f"Bicep compilation of {path} failed:\n{e.stderr}"
                ) from e
        else:
            try:
                compiled = json.loads(path.read_text())
            except json.JSONDecodeError as e:
                raise TemplateValidationError(f"Template {path} is not JSON: {e}") from e
        return compiled

    def load_template(self, source: str) -> dict[str, Any]:
        """Fetch, compile and statically validate a template."""
        with self._fetch(source) as path:
            template = self._compile(path)
        validate_template(template, self._expected)
        self._logger.info("Template validated", source=source)
        return template

    # ─────────────────────────────────────────────────────────────────────────
    # PHASE 2: SUBMIT AND WAIT
    # ─────────────────────────────────────────────────────────────────────────

    @contextmanager
    def _staged_files(
        self, template: dict[str, Any], parameters: dict[str, Any]
    ) -> Iterator[tuple[Path, Path]]:
        """Write template and parameters where only this user can read them."""
        with TemporaryDirectory(prefix="labdeploy-deploy-") as tmp:
            template_file = Path(tmp) / "template.json"
            template_file.write_text(json.dumps(template))
            params_file = Path(tmp) / "parameters.json"
            fd = os.open(params_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(
                    {
                        "$schema": PARAMETERS_SCHEMA,
                        "contentVersion": "1.0.0.0",
                        "parameters": {
                            name: {"value": value}
                            for name, value in parameters.items()
                        },
                    },
                    f,
                )
            yield template_file, params_file

    def _group_deployment(
        self, verb: str, request: DeploymentRequest, template_file: Path, params_file: Path
    ) -> Any:
        return self._az.run(
            [
                "deployment", "group", verb,
                "--resource-group", request.resource_group,
                "--name", request.deployment_name,
                "--template-file", str(template_file),
                "--parameters", f"@{params_file}",
            ]
        )

    def deploy(
        self, request: DeploymentRequest, template: dict[str, Any] | None = None
    ) -> DeploymentResult | None:
        """Run both phases; return ``None`` only in dry-run mode.

        ``template`` is a template already returned by :meth:`load_template`;
        without it the request's template source is loaded here.
        """
        if template is None:
            template = self.load_template(request.template_source)
        check_parameters(template, request.parameters)
        self._logger.info(
            "Deployment parameters resolved",
            deployment=request.deployment_name,
            parameters=sorted(request.parameters),
        )

        with self._staged_files(template, request.parameters) as (tfile, pfile):
            console.print("[dim]Validating deployment with Azure...[/dim]")
            self._group_deployment("validate", request, tfile, pfile)
            if self._dry_run:
                console.print(
                    f"[yellow]🔸 Dry run - would deploy {request.deployment_name}"
                    f" into {request.resource_group}[/yellow]"
                )
                return None

            console.print(
                f"[cyan]→ az deployment group create --name {request.deployment_name}"
                f" --resource-group {request.resource_group}[/cyan]"
            )
            with console.status("Deploying lab resources..."):
                try:
                    doc = self._group_deployment("create", request, tfile, pfile)
                except CommandFailedError as e:
                    raise DeploymentFailedError(
                        f"Deployment {request.deployment_name} failed:\n"
                        f"{e.stderr or e.stdout}"
                    ) from e

        return self._result(request, doc)

    def _result(self, request: DeploymentRequest, doc: Any) -> DeploymentResult:
        props = (doc or {}).get("properties", {}) if isinstance(doc, dict) else {}
        state = props.get("provisioningState", "Unknown")
        if state != "Succeeded":
            error = props.get("error") or {}
            raise DeploymentFailedError(
                f"Deployment {request.deployment_name} ended {state}: "
                f"{json.dumps(error) if error else 'no error details'}"
            )

        raw = props.get("outputs") or {}
        missing = [key for key in self._expected if key not in raw]
        if missing:
            raise OutputContractError(
                f"Deployment {request.deployment_name} succeeded without outputs: "
                + ", ".join(missing)
            )
        outputs = {
            key: str(value.get("value", "")) if isinstance(value, dict) else str(value)
            for key, value in raw.items()
        }
        endpoint = outputs.get(OUTPUT_ENDPOINT)
        if endpoint is not None and not endpoint.startswith("https://"):
            raise OutputContractError(f"{OUTPUT_ENDPOINT} is not https: {endpoint!r}")

        self._logger.info(
            "Deployment succeeded",
            deployment=request.deployment_name,
            outputs=sorted(outputs),
        )
        console.print(f"[green]✓[/green] Deployment {request.deployment_name} succeeded")
        return DeploymentResult(state=DeploymentState.SUCCEEDED, outputs=outputs)
