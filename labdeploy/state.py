"""Record of how far the last run got.

Re-runs converge through existence checks, so this file is for the operator
(``--status``) and for troubleshooting, not for deciding what to create. It
never holds the credential.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from rich.table import Table

from .ui import console


class Stage(str, Enum):
    """Provisioning stages, in execution order."""
    NOT_STARTED = "not_started"
    PROVIDERS_READY = "providers_ready"
    REGISTRY_READY = "registry_ready"
    IMAGE_READY = "image_ready"
    DEPLOYED = "deployed"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class RunState:
    """Persistent run state."""
    version: int = 1
    stage: Stage = Stage.NOT_STARTED
    account_id: str = ""
    resource_group: str = ""
    region: str = ""
    registry_name: str = ""
    environment_name: str = ""
    app_name: str = ""
    image: str = ""
    endpoint: str = ""
    header_name: str = ""

    # Metadata
    created_at: str = ""
    updated_at: str = ""
    error_message: str = ""

    def to_dict(self) -> dict:
        d = asdict(self)
        d['stage'] = self.stage.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> 'RunState':
        d = dict(d)
        d['stage'] = Stage(d.get('stage', Stage.NOT_STARTED.value))
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Manages the persistent run state file."""

    def __init__(self, state_file: Path):
        self.state_file = state_file
        self.state = self._load()

    def _load(self) -> RunState:
        if self.state_file.exists():
            try:
                data = json.loads(self.state_file.read_text())
                return RunState.from_dict(data)
            except (json.JSONDecodeError, KeyError, ValueError, TypeError):
                console.print(f"[yellow]⚠ Ignoring unreadable state file {self.state_file}[/yellow]")
        return RunState(created_at=_now())

    def save(self):
        self.state.updated_at = _now()
        self.state_file.write_text(json.dumps(self.state.to_dict(), indent=2))

    def update(self, **kwargs):
        for k, v in kwargs.items():
            if hasattr(self.state, k):
                setattr(self.state, k, v)
        self.save()

    def set_stage(self, stage: Stage):
        self.state.stage = stage
        self.state.error_message = ""
        self.save()

    def set_failed(self, error: str):
        self.state.error_message = error
        self.state.stage = Stage.FAILED
        self.save()

    def clear(self):
        self.state_file.unlink(missing_ok=True)
        self.state = RunState(created_at=_now())


def display_state_summary(state: RunState):
    """Display the last run's state."""
    table = Table(title="Lab Deployment State", show_header=False, border_style="cyan")
    table.add_column("Field", style="dim")
    table.add_column("Value", style="green")

    stage_style = "red" if state.stage == Stage.FAILED else "green"
    table.add_row("Stage", f"[{stage_style}]{state.stage.value}[/{stage_style}]")
    table.add_row("Resource group", state.resource_group or "not set")
    table.add_row("Region", state.region or "not set")

    if state.registry_name:
        table.add_row("Registry", state.registry_name)
    if state.image:
        table.add_row("Image", state.image)
    if state.app_name:
        table.add_row("App", state.app_name)
    if state.endpoint:
        table.add_row("Endpoint", state.endpoint)

    if state.stage == Stage.FAILED and state.error_message:
        table.add_row("Error", f"[red]{state.error_message}[/red]")

    console.print(table)
