"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest

from labdeploy.config import LabConfig
from labdeploy.log import configure_logging
from labdeploy.providers import RetryPolicy
from labdeploy.state import StateManager

from .support.fake_az import FakeCloud

ACCOUNT_ID = "sub-123"
GROUP = "rg-456"
REGION = "eastus"


@pytest.fixture(autouse=True)
def _logging() -> None:
    configure_logging(debug=False)


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud(ACCOUNT_ID, {GROUP: REGION})


@pytest.fixture
def build_context(tmp_path: Path) -> Path:
    ctx = tmp_path / "server"
    ctx.mkdir()
    (ctx / "Dockerfile").write_text("FROM python:3.12-slim\nCOPY . /app\n")
    (ctx / "pyproject.toml").write_text('[project]\nname = "mcp-server"\n')
    return ctx


@pytest.fixture
def arm_template(tmp_path: Path) -> Path:
    """A compiled template with the lab's parameter and output contract."""
    template = {
        "$schema": (
            "https://schema.management.azure.com/schemas/2019-04-01/"
            "deploymentTemplate.json#"
        ),
        "contentVersion": "1.0.0.0",
        "parameters": {
            "location": {"type": "string"},
            "registryName": {"type": "string"},
            "imageRepository": {"type": "string"},
            "imageTag": {"type": "string"},
            "environmentName": {"type": "string"},
            "containerAppName": {"type": "string"},
            "mcpApiKey": {"type": "securestring"},
            "labUserObjectId": {"type": "string", "defaultValue": ""},
            "deployStorage": {"type": "bool", "defaultValue": False},
            "deploySearch": {"type": "bool", "defaultValue": False},
            "deployOpenAI": {"type": "bool", "defaultValue": False},
        },
        "resources": [
            {
                "type": "Microsoft.App/containerApps",
                "apiVersion": "2024-03-01",
                "name": "[parameters('containerAppName')]",
                "location": "[parameters('location')]",
            }
        ],
        "outputs": {
            "apiBaseUrl": {"type": "string", "value": "[format('https://{0}', 'x')]"},
            "apiKeyHeaderName": {"type": "string", "value": "x-mcp-api-key"},
        },
    }
    path = tmp_path / "main.json"
    path.write_text(json.dumps(template))
    return path


@pytest.fixture
def config(tmp_path: Path, build_context: Path, arm_template: Path) -> LabConfig:
    return LabConfig(
        resource_group=GROUP,
        source_dir=build_context,
        template=str(arm_template),
        state_file=tmp_path / "state.json",
        log_file=tmp_path / "labdeploy.log",
        retry=RetryPolicy(max_attempts=3, interval=0),
        interactive=False,
    )


@pytest.fixture
def state_mgr(config: LabConfig) -> StateManager:
    return StateManager(config.state_file)
