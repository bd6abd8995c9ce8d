"""
Synchronization between a local env file and a remote project.

The SyncOrchestrator sequences provider calls and file IO around the merge
engine and the drift detector:

    push      local file -> remote project
    pull      remote project -> local file
    status    compare both sides, change nothing
    validate  check a local file for structural errors

Every operation is a single pass. Provider calls are awaited one at a time,
the local file is parsed before any remote call is made, and the local file
is only changed by one atomic replace at the very end of a pull.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import BwenvConfig, ConfigurationError
from .drift import DriftReport, diff
from .envfile import (
    EnvDocument,
    EnvFileError,
    ParseError,
    ParseMode,
    load_env_file,
    read_env_file,
    serialize,
    write_env_file,
)
from .log import get_logger
from .merge import MergePolicy, merge_with_changes
from .providers import Project, ProviderNotFoundError, SecretsProvider


class SyncOrchestrator:
    """
    Runs push, pull, status and validate against one provider.

    Example:
        async with MemoryProvider({"web": {"API_KEY": "x"}}) as provider:
            orchestrator = SyncOrchestrator(provider, BwenvConfig())
            result = await orchestrator.pull("web", ".env", force=True)
    """

    def __init__(
        self,
        provider: SecretsProvider,
        config: BwenvConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or BwenvConfig()
        self.log = logger or get_logger("sync")

    async def resolve_project(self, project: str | None = None) -> Project:
        """
        Find a project by id or name.

        Args:
            project: Project id or name; defaults to config.default_project

        Returns:
            The matching Project (an id match takes precedence over a name match)

        Raises:
            ConfigurationError: If no project was given or configured
            ProjectNotFoundError: If no project matches
        """
        ref = project or self.config.default_project
        if not ref:
            raise ConfigurationError(
                "No project given. Pass --project or set default_project in .bwenv.yaml"
            )

        projects = await self.provider.list_projects()
        for candidate in projects:
            if candidate.id == ref:
                return candidate
        for candidate in projects:
            if candidate.name == ref:
                return candidate

        raise ProjectNotFoundError("Project not found", project=ref)

    async def push(
        self,
        project: str | None = None,
        input_path: str | Path | None = None,
        overwrite: bool = False,
    ) -> PushResult:
        """
        Upload the variables of a local env file to a remote project.

        Remote keys that already exist keep their value unless `overwrite`
        is set. When nothing would change, the provider is not asked to
        write at all.

        Raises:
            EnvFileError: If the input file cannot be read
            ParseError: If the input file is malformed (before any remote call)
            ProviderError: If the provider fails
        """
        path = Path(input_path or self.config.env_file)
        local = read_env_file(path).to_map()
        self.log.debug("Parsed %d variable(s) from %s", len(local), path)

        target = await self.resolve_project(project)
        remote = await self.provider.get_secrets_map(target.id)

        policy = MergePolicy.from_flag(overwrite)
        plan = merge_with_changes(remote, local, policy)
        unchanged = tuple(sorted(key for key in local if remote.get(key) == local[key]))

        if not plan.changed:
            self.log.info("Project %s already up to date with %s", target.name, path)
        else:
            self.log.info(
                "Pushing to %s (%s): %d to create, %d to update",
                target.name,
                policy.value,
                len(plan.added),
                len(plan.updated),
            )
            await self.provider.sync_secrets(target.id, local, overwrite)

        if plan.kept:
            self.log.warning(
                "%d key(s) differ remotely and were kept: %s (use --overwrite to replace)",
                len(plan.kept),
                ", ".join(plan.kept),
            )

        return PushResult(
            project=target,
            path=path,
            created=plan.added,
            updated=plan.updated,
            unchanged=unchanged,
            skipped=plan.kept,
        )

    async def pull(
        self,
        project: str | None = None,
        output_path: str | Path | None = None,
        force: bool = False,
        merge: bool = False,
    ) -> PullResult:
        """
        Write the secrets of a remote project to a local env file.

        Modes for an existing file:
            force          replace the file's variables with the remote set
            merge          merge remote into local with config.merge_policy
            force + merge  merge remote into local, remote values win

        A missing file is simply created. Comments and layout of an existing
        file are kept where its keys survive.

        Raises:
            SafetyGateError: If the file exists and neither force nor merge is set
            ProviderError: If the provider fails (the file is left untouched)
            EnvFileError: If the file cannot be read or written
            ParseError: If the existing file is malformed
        """
        path = Path(output_path or self.config.env_file)

        target = await self.resolve_project(project)
        remote = await self.provider.get_secrets_map(target.id)
        self.log.debug("Fetched %d secret(s) from %s", len(remote), target.name)

        exists = path.exists()
        if exists and not (force or merge):
            raise SafetyGateError(path)

        document = load_env_file(path)
        local = document.to_map()

        if merge:
            policy = MergePolicy.OVERWRITE if force else self.config.merge_policy
            result = merge_with_changes(local, remote, policy)
            merged = result.merged
            added, updated, removed = result.added, result.updated, ()
        else:
            merged = dict(remote)
            report = diff(local, remote)
            added, updated, removed = report.remote_only, report.mismatched_keys, report.local_only

        new_document = document.with_values(merged)
        content = serialize(new_document, self.config.write_order)

        written = True
        if exists and _read_bytes(path) == content.encode("utf-8"):
            written = False
            self.log.info("%s is already up to date", path)
        else:
            write_env_file(path, new_document, self.config.write_order)
            self.log.info(
                "Wrote %s: %d added, %d updated, %d removed",
                path,
                len(added),
                len(updated),
                len(removed),
            )

        return PullResult(
            project=target,
            path=path,
            added=tuple(added),
            updated=tuple(updated),
            removed=tuple(removed),
            total=len(merged),
            written=written,
        )

    async def status(
        self, project: str | None = None, env_file: str | Path | None = None
    ) -> StatusResult:
        """
        Compare a local env file with a remote project. Nothing is written.

        A missing local file is treated as empty and flagged in the result.
        """
        path = Path(env_file or self.config.env_file)

        target = await self.resolve_project(project)
        remote = await self.provider.get_secrets_map(target.id)

        local_exists = path.exists()
        local = load_env_file(path).to_map()

        report = diff(local, remote)
        self.log.debug(
            "Drift for %s: %d local-only, %d remote-only, %d mismatched",
            target.name,
            len(report.local_only),
            len(report.remote_only),
            len(report.mismatched),
        )
        return StatusResult(project=target, path=path, local_exists=local_exists, report=report)

    def validate(self, input_path: str | Path | None = None) -> ValidationResult:
        """
        Check a local env file for structural errors without stopping at the first.

        Raises:
            EnvFileError: If the file cannot be read
            EncodingError: If the file is not valid UTF-8
        """
        return validate_env_file(input_path or self.config.env_file, self.log)

    async def list_projects(self) -> list[Project]:
        projects = await self.provider.list_projects()
        return sorted(projects, key=lambda p: p.name)

    async def list_secret_keys(self, project: str | None = None) -> tuple[Project, list[str]]:
        """Return a project and the sorted names of its secrets."""
        target = await self.resolve_project(project)
        remote = await self.provider.get_secrets_map(target.id)
        return target, sorted(remote)


def validate_env_file(
    path: str | Path, logger: logging.Logger | None = None
) -> ValidationResult:
    """
    Parse a file in COLLECT mode and report every malformed line.

    Raises:
        EnvFileError: If the file cannot be read
        EncodingError: If the file is not valid UTF-8
    """
    path = Path(path)
    document = read_env_file(path, ParseMode.COLLECT)

    if document.errors:
        (logger or get_logger("sync")).debug(
            "%s has %d malformed line(s)", path, len(document.errors)
        )

    return ValidationResult(path=path, document=document)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise EnvFileError(f"Error reading env file {path}: {exc.strerror}", path=path) from exc


@dataclass(frozen=True)
class PushResult:
    """Result of pushing a local file to a project."""

    project: Project
    path: Path
    created: tuple[str, ...]
    updated: tuple[str, ...]
    unchanged: tuple[str, ...]
    skipped: tuple[str, ...]

    @property
    def changed(self) -> int:
        return len(self.created) + len(self.updated)


@dataclass(frozen=True)
class PullResult:
    """Result of pulling a project into a local file."""

    project: Project
    path: Path
    added: tuple[str, ...]
    updated: tuple[str, ...]
    removed: tuple[str, ...]
    total: int
    written: bool


@dataclass(frozen=True)
class StatusResult:
    """Result of comparing a local file with a project."""

    project: Project
    path: Path
    local_exists: bool
    report: DriftReport


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a local file."""

    path: Path
    document: EnvDocument

    @property
    def errors(self) -> tuple[ParseError, ...]:
        return self.document.errors

    @property
    def first_error(self) -> ParseError | None:
        return self.document.errors[0] if self.document.errors else None

    @property
    def valid(self) -> bool:
        return not self.document.errors

    @property
    def entry_count(self) -> int:
        return len(self.document)


class ProjectNotFoundError(ProviderNotFoundError):
    """No project matches the given id or name."""


class SafetyGateError(Exception):
    """Exception raised when a pull would clobber an existing file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(
            f"{path} already exists. Use --merge to merge remote secrets into it "
            "or --force to replace its variables"
        )
