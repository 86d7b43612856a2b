"""Tests for run configuration."""

from pathlib import Path

from labdeploy.cli import build_parser
from labdeploy.config import LabConfig
from labdeploy.constants import DEFAULT_IMAGE_TAG, DEFAULT_TEMPLATE
from labdeploy.probe import GroupPolicy
from labdeploy.providers import Capability


def _config(*argv: str, **environ: str) -> LabConfig:
    return LabConfig.from_args(build_parser().parse_args(list(argv)), environ)


def test_defaults() -> None:
    config = _config()
    assert config.group_policy is GroupPolicy.DEFAULT
    assert config.resource_group is None
    assert config.image_tag == DEFAULT_IMAGE_TAG
    assert config.template == DEFAULT_TEMPLATE
    assert config.repo.branch == "main"
    assert config.interactive
    assert config.capabilities == [Capability.COMPUTE_HOST, Capability.REGISTRY]


def test_policy_inference() -> None:
    assert _config("-g", "rg-456").group_policy is GroupPolicy.EXPLICIT
    assert _config("--group-filter", "lab").group_policy is GroupPolicy.SEARCH
    assert (
        _config("-g", "rg-456", "--group-policy", "default").group_policy
        is GroupPolicy.DEFAULT
    )


def test_flags_override_environment() -> None:
    env = {
        "AZURE_SUBSCRIPTION_ID": "sub-env",
        "LABDEPLOY_RESOURCE_GROUP": "rg-env",
        "LABDEPLOY_LOCATION": "westus",
        "LABDEPLOY_REPO": "someone/server@dev",
        "LABDEPLOY_IMAGE_TAG": "v9",
    }
    config = _config(**env)
    assert config.subscription == "sub-env"
    assert config.resource_group == "rg-env"
    assert config.group_policy is GroupPolicy.EXPLICIT
    assert config.location == "westus"
    assert str(config.repo) == "someone/server@dev"
    assert config.image_tag == "v9"

    config = _config("-g", "rg-flag", "--branch", "release", "--image-tag", "v2", **env)
    assert config.resource_group == "rg-flag"
    assert str(config.repo) == "someone/server@release"
    assert config.image_tag == "v2"


def test_run_flags() -> None:
    config = _config(
        "--with-search",
        "--with-ai",
        "--non-interactive",
        "--dry-run",
        "--source-dir",
        "server",
        "--poll-attempts",
        "5",
        "--poll-interval",
        "1.5",
    )
    assert config.capabilities == [
        Capability.COMPUTE_HOST,
        Capability.REGISTRY,
        Capability.SEARCH,
        Capability.AI,
    ]
    assert not config.interactive
    assert config.dry_run
    assert config.source_dir == Path("server")
    assert config.retry.max_attempts == 5
    assert config.retry.interval == 1.5
