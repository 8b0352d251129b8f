import asyncio
import json
import logging
import os
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Optional

import click
from tqdm import tqdm

from .clients.archive import read_archive
from .clients.object_store import ObjectStoreClient, StoreCredentials
from .config import ConfigManager, config_to_dict
from .migration.engine import MigrationEngine, MigrationResult, MigrationState
from .migration.layout import analyze_layout, detect_buckets
from .migration.plan import plan_total
from .migration.progress import LogEntry, ProgressCounters, Severity
from .utils.exceptions import ArchiveParseError, ConfigurationError, MigratorError
from .utils.logger import run_log_path, setup_logging
from .utils.media import get_media_kind

logger = logging.getLogger(__name__)

SECRET_ENV_VARS = {
    "source": "SOURCE_SECRET_ACCESS_KEY",
    "destination": "DESTINATION_SECRET_ACCESS_KEY",
}


@click.group()
@click.version_option()
def main() -> None:
    pass


@main.command()
def config() -> None:
    """Create or update the configuration file."""
    mgr = ConfigManager()

    if mgr.exists():
        click.echo(f"Configuration file found: {mgr.config_path}")
        if not click.confirm("Overwrite existing configuration?", default=False):
            click.echo("Aborted.")
            return
        mgr.load()
    else:
        click.echo("No configuration file found. Creating a new one.")

    for role in ("source", "destination"):
        label = role.capitalize()
        click.echo(f"\n--- {label} store ---")
        mgr.get_or_prompt(f"{role}.url", f"{label} endpoint URL")
        mgr.get_or_prompt(f"{role}.access_key_id", f"{label} access key ID")
        mgr.get_or_prompt(f"{role}.region", f"{label} region")

    click.echo("\nSecret keys are not stored. Export them before running:")
    for env_var in SECRET_ENV_VARS.values():
        click.echo(f"  {env_var}")

    try:
        mgr.config.validate()
    except ConfigurationError as e:
        click.echo(f"\nValidation error: {e}", err=True)
        raise SystemExit(1)

    mgr.save()
    click.echo(f"\nConfiguration saved to {mgr.config_path}")


@main.command()
def show() -> None:
    """Print the current configuration."""
    mgr = ConfigManager()

    if not mgr.exists():
        click.echo(f"No configuration file found at {mgr.config_path}")
        click.echo("Run 'storage-migrator config' to create one.")
        raise SystemExit(1)

    try:
        cfg = mgr.load()
    except ConfigurationError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Configuration file: {mgr.config_path}\n")
    click.echo(json.dumps(config_to_dict(cfg), indent=2))


def _load_config() -> ConfigManager:
    mgr = ConfigManager()
    if not mgr.exists():
        click.echo("No configuration found. Run 'storage-migrator config' first.")
        raise SystemExit(1)
    try:
        mgr.load()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)
    return mgr


def _credentials(cfg: ConfigManager, role: str) -> StoreCredentials:
    url = cfg.get(f"{role}.url")
    if not url:
        click.echo(f"No {role} endpoint configured.", err=True)
        raise SystemExit(1)

    secret = os.environ.get(SECRET_ENV_VARS[role]) or click.prompt(
        f"{role.capitalize()} secret access key", hide_input=True
    )
    return StoreCredentials(
        url=url,
        access_key_id=cfg.get(f"{role}.access_key_id"),
        secret_access_key=secret,
        region=cfg.get(f"{role}.region"),
    )


def _create_engine(
    cfg: ConfigManager,
    concurrency: Optional[int] = None,
    skip_existing: Optional[bool] = None,
    wrapping_root: Optional[bool] = None,
) -> MigrationEngine:
    migration_cfg = cfg.config.migration
    overwrite = (
        migration_cfg.overwrite_existing if skip_existing is None else not skip_existing
    )

    return MigrationEngine(
        overwrite_existing=overwrite,
        concurrency=(
            migration_cfg.concurrency if concurrency is None else concurrency
        ),
        page_size=migration_cfg.page_size,
        retry_attempts=migration_cfg.retry_attempts,
        retry_delay_seconds=migration_cfg.retry_delay_seconds,
        default_bucket_public=migration_cfg.default_bucket_public,
        wrapping_root=(
            migration_cfg.wrapping_root if wrapping_root is None else wrapping_root
        ),
    )


def _run_with_progress(
    coro_fn: Callable[[], Any],
    engine: MigrationEngine,
    desc: str = "Migrating",
) -> MigrationResult:
    progress_bar = tqdm(desc=desc, unit="object", total=0)

    def on_progress(counters: ProgressCounters) -> None:
        progress_bar.total = counters.total
        progress_bar.n = counters.processed
        progress_bar.refresh()

    def on_log(entry: LogEntry) -> None:
        if entry.severity in (Severity.WARNING, Severity.ERROR):
            tqdm.write(f"[{entry.severity.value}] {entry.message}", file=sys.stderr)

    engine.set_progress_callback(on_progress)
    engine.set_log_callback(on_log)

    try:
        result: MigrationResult = asyncio.run(coro_fn())
    finally:
        progress_bar.close()
    return result


def _print_summary(result: MigrationResult) -> None:
    counters = result.counters
    click.echo("\n--- Migration Summary ---")
    click.echo(f"  Status:       {result.state.value}")
    click.echo(
        f"  Processed:    {counters.processed}/{counters.total} "
        f"({counters.percentage}%)"
    )
    click.echo(f"  Migrated:     {result.outcomes.migrated}")
    click.echo(f"  Skipped:      {result.outcomes.skipped}")
    click.echo(f"  Failed:       {result.outcomes.failed}")
    click.echo(f"\n{result.summary}")


def _finish(
    engine: MigrationEngine, result: MigrationResult, log_file: Optional[Path]
) -> None:
    if log_file is not None:
        count = engine.context.export_log_to_json(log_file)
        click.echo(f"Wrote {count} log entries to {log_file}")

    _print_summary(result)
    if result.state == MigrationState.FAILED:
        raise SystemExit(1)


def _resolve_log_file(
    log_file: Optional[Path], save_log: bool, mode: str
) -> Optional[Path]:
    if log_file is not None:
        return log_file
    return run_log_path(mode) if save_log else None


@main.command()
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Objects transferred in parallel",
)
@click.option(
    "--skip-existing/--overwrite",
    default=None,
    help="Skip objects already present at the destination instead of overwriting",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the migration log as JSON",
)
@click.option(
    "--save-log", is_flag=True, help="Write the log to the default log directory"
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def migrate(
    concurrency: Optional[int],
    skip_existing: Optional[bool],
    log_file: Optional[Path],
    save_log: bool,
    verbose: bool,
) -> None:
    """Copy every bucket and object from the source store to the destination."""
    if verbose:
        setup_logging(level="DEBUG")

    cfg = _load_config()
    source = _credentials(cfg, "source")
    destination = _credentials(cfg, "destination")
    engine = _create_engine(cfg, concurrency, skip_existing)

    click.echo(f"Migrating {source.url} -> {destination.url}...")

    result = _run_with_progress(
        lambda: engine.migrate_live(source, destination),
        engine,
        desc="Migrating",
    )
    _finish(engine, result, _resolve_log_file(log_file, save_log, "live"))


@main.command()
@click.argument(
    "archive", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Objects transferred in parallel",
)
@click.option(
    "--skip-existing/--overwrite",
    default=None,
    help="Skip objects already present at the destination instead of overwriting",
)
@click.option(
    "--wrapping-root/--no-wrapping-root",
    default=None,
    help="Whether a project folder wraps the buckets (default: detect)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the migration log as JSON",
)
@click.option(
    "--save-log", is_flag=True, help="Write the log to the default log directory"
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def restore(
    archive: Path,
    concurrency: Optional[int],
    skip_existing: Optional[bool],
    wrapping_root: Optional[bool],
    log_file: Optional[Path],
    save_log: bool,
    verbose: bool,
) -> None:
    """Upload the buckets of an exported archive to the destination store."""
    if verbose:
        setup_logging(level="DEBUG")

    cfg = _load_config()
    destination = _credentials(cfg, "destination")
    engine = _create_engine(cfg, concurrency, skip_existing, wrapping_root)
    blob = archive.read_bytes()

    click.echo(f"Restoring {archive} -> {destination.url}...")

    result = _run_with_progress(
        lambda: engine.migrate_archive(blob, destination),
        engine,
        desc="Restoring",
    )
    _finish(engine, result, _resolve_log_file(log_file, save_log, "archive"))


@main.command()
@click.argument(
    "archive", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--wrapping-root/--no-wrapping-root",
    default=None,
    help="Whether a project folder wraps the buckets (default: detect)",
)
def inspect(archive: Path, wrapping_root: Optional[bool]) -> None:
    """Preview the buckets and objects an archive would restore."""
    try:
        entries = read_archive(archive.read_bytes())
    except ArchiveParseError as e:
        click.echo(f"Cannot read archive: {e}", err=True)
        raise SystemExit(1)

    preview = detect_buckets(entries.keys())
    click.echo(f"Detected buckets: {', '.join(preview) if preview else '(none)'}")

    inferred = analyze_layout(entries, wrapping_root=wrapping_root)
    click.echo(f"Layout: {inferred.layout.value}")
    if inferred.root:
        click.echo(f"Wrapping folder: {inferred.root}")

    total = plan_total(inferred.plan)
    click.echo(f"\n{len(inferred.plan)} bucket(s), {total} object(s):")
    for bucket, objects in inferred.plan.items():
        kinds: Counter = Counter()
        for obj in objects:
            try:
                kinds[get_media_kind(obj.relative_path).value] += 1
            except ValueError:
                kinds["other"] += 1
        breakdown = ", ".join(f"{kind}: {n}" for kind, n in sorted(kinds.items()))
        click.echo(f"  {bucket:<30} {len(objects):>6}  ({breakdown})")

    if inferred.skipped:
        click.echo(f"\nSkipped {len(inferred.skipped)} file(s) outside any bucket:")
        for path in inferred.skipped:
            click.echo(f"  {path}")


@main.command()
@click.option("--archive-only", is_flag=True, help="Skip the source store checks")
def validate(archive_only: bool) -> None:
    """Run pre-flight checks before migration."""
    failed = False

    # 1. Config
    try:
        cfg = _load_config()
        click.echo("[PASS] Configuration loaded")
    except SystemExit:
        click.echo("[FAIL] Configuration")
        raise SystemExit(1)

    roles = ("destination",) if archive_only else ("source", "destination")
    for role in roles:
        # 2. Credentials and client construction
        label = role.capitalize()
        try:
            client = ObjectStoreClient.from_credentials(_credentials(cfg, role))
            click.echo(f"[PASS] {label} connection")
        except (SystemExit, MigratorError) as e:
            reason = f": {e}" if isinstance(e, MigratorError) else ""
            click.echo(f"[FAIL] {label} connection{reason}")
            click.echo(f"[SKIP] {label} bucket listing")
            failed = True
            continue

        # 3. Bucket listing
        try:
            buckets = client.list_buckets()
            click.echo(f"[PASS] {label} bucket listing ({len(buckets)} buckets)")
        except MigratorError as e:
            click.echo(f"[FAIL] {label} bucket listing: {e}")
            failed = True

    if failed:
        click.echo("\nValidation failed.")
        raise SystemExit(1)
    else:
        click.echo("\nAll checks passed.")


if __name__ == "__main__":
    main()
