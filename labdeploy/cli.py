"""Command-line entry point for the lab installer."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import questionary
import structlog
from rich.panel import Panel

from . import __version__
from .azcli import AzureCli
from .config import LabConfig
from .constants import APP_NAME, DEFAULT_IMAGE_REPOSITORY, LOG_FILE, STATE_FILE
from .exceptions import LabDeployError
from .log import configure_logging, transcript
from .orchestrator import Orchestrator
from .probe import GroupPolicy
from .providers import RetryPolicy
from .report import default_result_path, show_result, write_result
from .state import Stage, StateManager, display_state_summary
from .ui import PROMPT_STYLE, console

__all__ = ["build_parser", "main", "run_preflight_checks"]


def build_parser() -> argparse.ArgumentParser:
    defaults = RetryPolicy()
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Provision the MCP classroom lab on Azure",
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    target = parser.add_argument_group("target")
    target.add_argument('--subscription', help='Azure subscription id or name')
    target.add_argument('--resource-group', '-g', help='Lab resource group')
    target.add_argument('--group-filter', help='Search resource groups by name fragment')
    target.add_argument(
        '--group-policy',
        type=GroupPolicy,
        choices=list(GroupPolicy),
        help='How to choose the resource group (default: inferred from flags)',
    )
    target.add_argument('--location', '-l', help='Azure region (default: the group\'s)')

    image = parser.add_argument_group("image")
    image.add_argument('--repo', help='GitHub owner/name[@branch] of the lab server')
    image.add_argument('--branch', help='Branch to build')
    image.add_argument('--source-dir', type=Path, help='Build from a local directory instead')
    image.add_argument('--image-repository', default=DEFAULT_IMAGE_REPOSITORY)
    image.add_argument('--image-tag', help='Image tag to build or reuse')

    deploy = parser.add_argument_group("deployment")
    deploy.add_argument('--template', help='Bicep/ARM template path or https URL')
    deploy.add_argument('--lab-user', help='UPN or object id granted access to lab resources')
    deploy.add_argument('--with-storage', action='store_true', help='Also deploy a storage account')
    deploy.add_argument('--with-search', action='store_true', help='Also deploy AI Search')
    deploy.add_argument('--with-ai', action='store_true', help='Also deploy Azure OpenAI')
    deploy.add_argument('--poll-attempts', type=int, default=defaults.max_attempts)
    deploy.add_argument('--poll-interval', type=float, default=defaults.interval)

    run = parser.add_argument_group("run")
    run.add_argument('--output', '-o', type=Path, help='Where to write the access file')
    run.add_argument('--state-file', type=Path, default=Path(STATE_FILE))
    run.add_argument('--log-file', type=Path, default=Path(LOG_FILE))
    run.add_argument('--dry-run', action='store_true', help='Probe and validate only')
    run.add_argument('--non-interactive', action='store_true', help='Never prompt')
    run.add_argument('--status', action='store_true', help='Show the last run\'s state')
    run.add_argument('--reset', action='store_true', help='Clear saved state')
    run.add_argument('--debug', action='store_true', help='Verbose logging')
    return parser


def run_preflight_checks(az: AzureCli) -> bool:
    """Check the Azure CLI is installed and logged in."""
    console.print("[bold]Pre-flight Checks[/bold]")
    console.print()
    try:
        version = az.version()
        console.print(f"  [green]✓[/green] az: [dim]{version}[/dim]")
        account = az.account()
        console.print(f"  [green]✓[/green] logged in as [dim]{account.get('user', {}).get('name', 'unknown')}[/dim]")
    except LabDeployError as e:
        console.print(f"  [red]✗[/red] {e}")
        console.print()
        console.print("[red]❌ Fix the above and try again.[/red]")
        return False
    console.print()
    return True


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = LabConfig.from_args(args)
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 2

    configure_logging(debug=config.debug)
    logger = structlog.get_logger(APP_NAME)

    console.print(Panel.fit(
        "[bold cyan]MCP Lab Deploy[/bold cyan]\n[dim]Classroom Environment Provisioning[/dim]",
        border_style="cyan"
    ))
    console.print()

    state_mgr = StateManager(config.state_file)

    if args.reset:
        state_mgr.clear()
        console.print("[green]✓ State cleared[/green]")
        return 0

    if args.status:
        display_state_summary(state_mgr.state)
        return 0

    if state_mgr.state.stage == Stage.FAILED:
        display_state_summary(state_mgr.state)
        console.print("[yellow]Previous run failed; existing resources will be reused.[/yellow]")
        if config.interactive and not questionary.confirm(
            "Run again?", default=True, style=PROMPT_STYLE
        ).ask():
            return 1

    az = AzureCli(subscription=config.subscription)
    with transcript(config.log_file) as log_path:
        logger.info("Starting lab deployment", version=__version__, dry_run=config.dry_run)
        if not run_preflight_checks(az):
            console.print(f"[dim]Transcript: {log_path}[/dim]")
            return 1

        orchestrator = Orchestrator(config, az, state_mgr=state_mgr)
        try:
            result = orchestrator.run()
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted. Run again to resume.[/yellow]")
            console.print(f"[dim]Transcript: {log_path}[/dim]")
            return 130
        except LabDeployError as e:
            console.print(f"[red]❌ Deployment failed: {e}[/red]")
            console.print(f"[dim]Transcript: {log_path}[/dim]")
            return 1

        if result is None:
            console.print("[yellow]🔸 Dry run complete, nothing was changed[/yellow]")
            return 0

        output = config.output or default_result_path()
        try:
            write_result(result, output)
        except OSError as e:
            show_result(result)
            console.print(f"[red]❌ Could not write {output}: {e}[/red]")
            console.print("[yellow]Copy the key above now, it is not saved anywhere else.[/yellow]")
            console.print(f"[dim]Transcript: {log_path}[/dim]")
            logger.error("Access file not written", path=str(output), error=str(e))
            state_mgr.set_failed(f"Could not write {output}: {e}")
            return 1
        state_mgr.set_stage(Stage.COMPLETE)
        logger.info("Access file written", path=str(output))
        show_result(result, output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
