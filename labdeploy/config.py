"""Run configuration: command-line flags over environment over defaults."""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from . import constants
from .models import RepoCoordinates
from .probe import GroupPolicy
from .providers import Capability, RetryPolicy

__all__ = ["LabConfig"]


@dataclass(frozen=True)
class LabConfig:
    subscription: str | None = None
    resource_group: str | None = None
    group_filter: str | None = None
    group_policy: GroupPolicy = GroupPolicy.EXPLICIT
    location: str | None = None
    repo: RepoCoordinates = field(
        default_factory=lambda: RepoCoordinates.parse(
            constants.DEFAULT_REPO, constants.DEFAULT_BRANCH
        )
    )
    source_dir: Path | None = None
    image_repository: str = constants.DEFAULT_IMAGE_REPOSITORY
    image_tag: str = constants.DEFAULT_IMAGE_TAG
    template: str = constants.DEFAULT_TEMPLATE
    lab_user: str | None = None
    with_storage: bool = False
    with_search: bool = False
    with_ai: bool = False
    output: Path | None = None
    state_file: Path = Path(constants.STATE_FILE)
    log_file: Path = Path(constants.LOG_FILE)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    dry_run: bool = False
    interactive: bool = True
    debug: bool = False

    @property
    def capabilities(self) -> list[Capability]:
        """Providers this run needs, in gating order."""
        caps = [Capability.COMPUTE_HOST, Capability.REGISTRY]
        if self.with_storage:
            caps.append(Capability.STORAGE)
        if self.with_search:
            caps.append(Capability.SEARCH)
        if self.with_ai:
            caps.append(Capability.AI)
        return caps

    @classmethod
    def from_args(
        cls, args: argparse.Namespace, environ: Mapping[str, str] | None = None
    ) -> LabConfig:
        env = os.environ if environ is None else environ

        def pick(flag: str | None, var: str, default: str | None = None) -> str | None:
            return flag or env.get(var) or default

        resource_group = pick(args.resource_group, "LABDEPLOY_RESOURCE_GROUP")
        policy = args.group_policy
        if policy is None:
            if args.group_filter:
                policy = GroupPolicy.SEARCH
            elif resource_group:
                policy = GroupPolicy.EXPLICIT
            else:
                policy = GroupPolicy.DEFAULT

        repo = RepoCoordinates.parse(
            pick(args.repo, "LABDEPLOY_REPO", constants.DEFAULT_REPO),
            pick(args.branch, "LABDEPLOY_BRANCH"),
        )
        return cls(
            subscription=pick(args.subscription, "AZURE_SUBSCRIPTION_ID"),
            resource_group=resource_group,
            group_filter=args.group_filter,
            group_policy=GroupPolicy(policy),
            location=pick(args.location, "LABDEPLOY_LOCATION"),
            repo=repo,
            source_dir=args.source_dir,
            image_repository=args.image_repository,
            image_tag=pick(args.image_tag, "LABDEPLOY_IMAGE_TAG", constants.DEFAULT_IMAGE_TAG),
            template=pick(args.template, "LABDEPLOY_TEMPLATE", constants.DEFAULT_TEMPLATE),
            lab_user=pick(args.lab_user, "LABDEPLOY_LAB_USER"),
            with_storage=args.with_storage,
            with_search=args.with_search,
            with_ai=args.with_ai,
            output=args.output,
            state_file=args.state_file,
            log_file=args.log_file,
            retry=RetryPolicy(args.poll_attempts, args.poll_interval),
            dry_run=args.dry_run,
            interactive=not args.non_interactive,
            debug=args.debug,
        )
