"""
Command-line interface for bwenv.

This module provides the CLI entry point, argument parsing, rendering of
results and the mapping of errors to exit codes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Sequence

from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import BwenvConfig, ConfigurationError, init_config
from .envfile import EnvFileError, InvalidKeyError, ParseError
from .log import setup_logging, teardown_logging
from .providers import ProviderError, ProviderRegistry, default_registry
from .sync import (
    PullResult,
    PushResult,
    SafetyGateError,
    StatusResult,
    SyncOrchestrator,
    ValidationResult,
    validate_env_file,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARSE = 2
EXIT_IO = 3
EXIT_PROVIDER = 4
EXIT_SAFETY_GATE = 5
EXIT_CONFIG = 6
EXIT_INTERRUPTED = 130


def main(argv: Sequence[str] | None = None, registry: ProviderRegistry | None = None) -> int:
    """Main entry point for the CLI."""
    try:
        return asyncio.run(_main_async(argv, registry))
    except KeyboardInterrupt:
        rprint("[yellow]Cancelled.[/yellow]")
        return EXIT_INTERRUPTED
    except Exception as exc:
        rprint(f"[red]Error: {escape(str(exc))}[/red]")
        return EXIT_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bwenv",
        description="Sync .env files with a remote secret store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bwenv push -p my-app                 # Upload new keys from .env
  bwenv push -p my-app --overwrite     # Also replace differing remote values
  bwenv pull -p my-app                 # Create .env from the project
  bwenv pull -p my-app --merge         # Add remote keys, keep local values
  bwenv pull -p my-app --force         # Replace .env variables with remote
  bwenv status -p my-app               # Show drift between .env and remote
  bwenv validate -i .env.production    # Check file syntax
        """,
    )

    parser.add_argument("--config", help="Configuration file path")
    parser.add_argument("--provider", help="Provider to use (overrides config)")
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase verbosity (can be used multiple times)",
    )
    parser.add_argument("--quiet", "-q", action="store_true", help="Only report errors")
    parser.add_argument("--version", action="version", version=f"bwenv {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    push = commands.add_parser("push", help="Upload local secrets to a project")
    push.add_argument("-p", "--project", help="Project name or id")
    push.add_argument("-i", "--input", help="Input env file (default: config env_file)")
    push.add_argument("--overwrite", action="store_true", help="Replace differing remote values")

    pull = commands.add_parser("pull", help="Download project secrets to a local file")
    pull.add_argument("-p", "--project", help="Project name or id")
    pull.add_argument("-o", "--output", help="Output env file (default: config env_file)")
    pull.add_argument("--force", action="store_true", help="Replace the existing file's variables")
    pull.add_argument("--merge", action="store_true", help="Merge remote secrets into the existing file")

    status = commands.add_parser("status", help="Compare a local file with a project")
    status.add_argument("-p", "--project", help="Project name or id")
    status.add_argument("-e", "--env-file", help="Env file to compare (default: config env_file)")

    validate = commands.add_parser("validate", help="Check env file syntax")
    validate.add_argument("-i", "--input", help="Env file to check (default: config env_file)")

    list_cmd = commands.add_parser("list", help="List projects or the keys of a project")
    list_cmd.add_argument("-p", "--project", help="List secret names of this project")

    init = commands.add_parser("init", help="Write a starter .bwenv.yaml")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config file")

    return parser


async def _main_async(argv: Sequence[str] | None, registry: ProviderRegistry | None) -> int:
    """Async main function."""
    args = build_parser().parse_args(argv)

    try:
        config = BwenvConfig.load(args.config)
    except ConfigurationError as exc:
        rprint(f"[red]Error: {escape(str(exc))}[/red]")
        return EXIT_CONFIG

    config = config.with_overrides(
        default_project=getattr(args, "project", None),
        env_file=(
            getattr(args, "input", None)
            or getattr(args, "output", None)
            or getattr(args, "env_file", None)
        ),
        provider=replace(config.provider, type=args.provider) if args.provider else None,
    )

    log = setup_logging(args.verbose, args.quiet, config.log_level)
    try:
        return await _run(args, config, registry or default_registry(), log)
    finally:
        teardown_logging()


async def _run(
    args: argparse.Namespace,
    config: BwenvConfig,
    registry: ProviderRegistry,
    log: logging.Logger,
) -> int:
    operation = args.command

    try:
        if operation == "init":
            path = init_config(args.config or ".bwenv.yaml", force=args.force)
            rprint(f"[green]Created {escape(str(path))}[/green]")
            return EXIT_OK

        if operation == "validate":
            return _display_validation(validate_env_file(config.env_file, log.getChild("sync")))

        provider_name = config.provider.type
        try:
            provider = registry.create(provider_name, config.provider_options())
        except KeyError as exc:
            raise ConfigurationError(exc.args[0]) from exc
        log.debug("Using provider %s", provider_name)

        try:
            orchestrator = SyncOrchestrator(provider, config, log.getChild("sync"))

            if operation == "push":
                _display_push(await orchestrator.push(overwrite=args.overwrite))
            elif operation == "pull":
                _display_pull(await orchestrator.pull(force=args.force, merge=args.merge))
            elif operation == "status":
                _display_status(await orchestrator.status())
            elif operation == "list":
                await _display_list(orchestrator, args.project)
        finally:
            await provider.close()

    except ParseError as exc:
        rprint(f"[red]{operation} failed: {escape(str(exc))}[/red]")
        return EXIT_PARSE
    except (EnvFileError, InvalidKeyError) as exc:
        rprint(f"[red]{operation} failed: {escape(str(exc))}[/red]")
        return EXIT_IO
    except ProviderError as exc:
        rprint(f"[red]{operation} failed: {escape(str(exc))}[/red]")
        return EXIT_PROVIDER
    except SafetyGateError as exc:
        rprint(f"[red]{operation} refused: {escape(str(exc))}[/red]")
        return EXIT_SAFETY_GATE
    except ConfigurationError as exc:
        rprint(f"[red]{operation} failed: {escape(str(exc))}[/red]")
        return EXIT_CONFIG
    except OSError as exc:
        rprint(f"[red]{operation} failed: {escape(str(exc))}[/red]")
        return EXIT_IO

    return EXIT_OK


def _display_push(result: PushResult) -> None:
    rprint(
        f"[green]Pushed {escape(str(result.path))} to {escape(result.project.name)}:[/green] "
        f"{len(result.created)} created, {len(result.updated)} updated, "
        f"{len(result.unchanged)} unchanged"
    )
    if result.skipped:
        rprint(
            f"[yellow]{len(result.skipped)} key(s) differ remotely and were kept:[/yellow] "
            f"{escape(', '.join(result.skipped))}"
        )
        rprint("   → Run 'bwenv push --overwrite' to replace them")


def _display_pull(result: PullResult) -> None:
    if not result.written:
        rprint(f"[green]{escape(str(result.path))} is already up to date ({result.total} keys).[/green]")
        return

    rprint(
        f"[green]Wrote {escape(str(result.path))} from {escape(result.project.name)}:[/green] "
        f"{len(result.added)} added, {len(result.updated)} updated, "
        f"{len(result.removed)} removed, {result.total} total"
    )


def _display_status(result: StatusResult) -> None:
    report = result.report
    rprint(f"Project: [cyan]{escape(result.project.name)}[/cyan] ({result.project.id})")

    if not result.local_exists:
        rprint(f"[yellow]Local file '{escape(str(result.path))}' not found[/yellow]")

    if report.in_sync:
        rprint(f"[green]In sync:[/green] {report.matching} secret(s) match")
        return

    table = Table(title="Out of sync")
    table.add_column("Key", style="cyan")
    table.add_column("State", style="yellow")
    table.add_column("Fix", style="green")

    for key in report.remote_only:
        table.add_row(escape(key), "only in remote", "bwenv pull --merge")
    for key in report.local_only:
        table.add_row(escape(key), "only in local", "bwenv push")
    for key in report.mismatched_keys:
        table.add_row(escape(key), "values differ", "bwenv pull --force / push --overwrite")

    rprint(table)
    rprint(f"{report.matching} secret(s) match, {report.total_drift} differ")


def _display_validation(result: ValidationResult) -> int:
    if result.valid:
        rprint(
            f"[green]✓ {escape(str(result.path))} is valid "
            f"({result.entry_count} variables)[/green]"
        )
        return EXIT_OK

    first = result.first_error
    rprint(
        f"[red]validate failed: {escape(str(result.path))}: "
        f"line {first.line_number}: {first.message}[/red]"
    )
    for error in result.errors[1:]:
        rprint(f"[yellow]  line {error.line_number}: {error.message}[/yellow]")
    return EXIT_PARSE


async def _display_list(orchestrator: SyncOrchestrator, project: str | None) -> None:
    if project:
        target, keys = await orchestrator.list_secret_keys(project)
        rprint(f"Project: [cyan]{escape(target.name)}[/cyan] ({target.id})")
        if not keys:
            rprint("  No secrets found")
        for key in keys:
            rprint(f"  {escape(key)} = <hidden>")
        return

    projects = await orchestrator.list_projects()
    if not projects:
        rprint("[yellow]No projects found.[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("Name", style="cyan")
    table.add_column("Id", style="green")
    for item in projects:
        table.add_row(escape(item.name), item.id)
    rprint(table)


if __name__ == "__main__":
    sys.exit(main())
