"""Command line interface for the abcatalog project."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Any, Sequence

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from abcatalog.config import CatalogConfig, ConfigError, ConfigManager, resolve_with_precedence
from abcatalog.lifecycle.audit import JsonlAuditSink
from abcatalog.logging_setup import configure_logging
from abcatalog.service import CatalogService
from abcatalog.state import (
    CatalogError,
    CategoryAggregate,
    CategoryDraft,
    ItemDraft,
    NotFoundError,
    PublicationStatus,
    StateRepository,
)
from abcatalog.state.letters import ALPHABET

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ConfigError):
        return "config_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, CatalogError):
        return "validation_error"
    return "cli_error"


def _emit_message(message: Any, *, quiet: bool, mode: str = "detail") -> None:
    """Print ``message`` unless quiet mode suppresses it."""

    if quiet and mode != "error":
        return
    console.print(message)


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


def _load_config(ctx: click.Context) -> CatalogConfig:
    manager = ConfigManager()
    config = manager.load()
    configure_logging(config.logging, verbose=ctx.obj.get("verbose", False))
    return config


def _open_service(ctx: click.Context, config: CatalogConfig) -> CatalogService:
    repository = StateRepository(ctx.obj["root"])
    repository.initialize()
    return CatalogService(repository, JsonlAuditSink(repository.audit_log_path), config)


def _quiet_enabled(ctx: click.Context, quiet: bool, config: CatalogConfig) -> bool:
    if ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE:
        return quiet
    return config.cli.quiet_default


def _aggregate_table(title: str, aggregate: CategoryAggregate) -> Table:
    table = Table(title=title)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Items", str(aggregate.total_items))
    table.add_row("Archived items", str(aggregate.archived_items))
    for status, count in aggregate.acquisition_counts.items():
        table.add_row(f"Acquisition: {status.value}", str(count))
    for status, count in aggregate.publication_counts.items():
        table.add_row(f"Publication: {status.value}", str(count))
    table.add_row("Media records", str(aggregate.total_media))
    average = aggregate.average_quality
    table.add_row("Average quality", "-" if average is None else f"{average:.2f}")
    filled = "".join(
        letter if flag else "." for letter, flag in zip(ALPHABET, aggregate.letters_filled)
    )
    table.add_row("Letters filled", f"{aggregate.filled_letters}/26 {filled}")
    table.add_row("Anomalies", str(len(aggregate.anomalies)))
    return table


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="abcatalog")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Directory holding the catalog state.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, root: Path, verbose: bool) -> None:
    """abcatalog manages alphabet vocabulary catalogs and their media lifecycle.

    Returns:
        None: This function is invoked for its side effects.
    """
    ctx.ensure_object(dict)
    ctx.obj["root"] = root.expanduser().resolve()
    ctx.obj["verbose"] = verbose


@cli.group()
def category() -> None:
    """Create and inspect categories."""


@category.command("create")
@click.argument("category_id")
@click.option("--name", required=True, help="Display name of the category.")
@click.option("--description", default="", help="Free-text description.")
@click.option("--target", type=int, help="Approved media required per item.")
@click.option("--json", "json_output", is_flag=True, help="Emit the created category as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def category_create(
    ctx: click.Context,
    category_id: str,
    name: str,
    description: str,
    target: int | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """Create CATEGORY_ID with 26 empty letter slots.

    Raises:
        click.ClickException: If the id is invalid or already used.
    """
    try:
        config = _load_config(ctx)
        service = _open_service(ctx, config)
        strategy = None
        if target is not None:
            strategy = {
                "target_images_per_item": target,
                "min_quality_threshold": config.quality.min_quality_threshold,
                "auto_approval_threshold": config.quality.auto_approval_threshold,
                "max_search_attempts": config.lifecycle.max_search_attempts,
            }
        draft = CategoryDraft.model_validate(
            {"id": category_id, "name": name, "description": description, "strategy": strategy}
        )
        created = service.create_category(draft, actor="cli")
    except (ConfigError, CatalogError, ValueError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=created.model_dump(mode="json"))
        return
    _emit_message(
        f"[green]Created category {created.id} ({created.name}).[/green]",
        quiet=_quiet_enabled(ctx, quiet, config),
    )


@category.command("list")
@click.option("--json", "json_output", is_flag=True, help="Emit categories as JSON.")
@click.pass_context
def category_list(ctx: click.Context, json_output: bool) -> None:
    """List stored categories with their headline counters."""
    try:
        config = _load_config(ctx)
        categories = _open_service(ctx, config).list_categories()
    except (ConfigError, CatalogError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data=[
                {
                    "id": entry.id,
                    "name": entry.name,
                    "aggregate": entry.aggregate.model_dump(mode="json"),
                }
                for entry in categories
            ]
        )
        return

    table = Table(title=f"Categories in {ctx.obj['root']}")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Items", justify="right")
    table.add_column("Complete", justify="right")
    table.add_column("Published", justify="right")
    table.add_column("Letters", justify="right")
    for entry in categories:
        aggregate = entry.aggregate
        table.add_row(
            entry.id,
            entry.name,
            str(aggregate.total_items),
            str(aggregate.completed_items),
            str(aggregate.published_items),
            f"{aggregate.filled_letters}/26",
        )
    console.print(table)


@cli.group()
def item() -> None:
    """Manage vocabulary items."""


@item.command("add")
@click.argument("category_id")
@click.argument("letter")
@click.argument("name")
@click.option("--id", "item_id", help="Explicit item identifier.")
@click.option("--description", default="", help="Free-text description.")
@click.option("--difficulty", type=click.IntRange(1, 5), default=1, show_default=True)
@click.option("--target", type=click.IntRange(min=1), help="Override the category target.")
@click.option("--json", "json_output", is_flag=True, help="Emit the created item as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def item_add(
    ctx: click.Context,
    category_id: str,
    letter: str,
    name: str,
    item_id: str | None,
    description: str,
    difficulty: int,
    target: int | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """Add NAME under LETTER in CATEGORY_ID.

    Raises:
        click.ClickException: If the category is missing or the letter is invalid.
    """
    try:
        config = _load_config(ctx)
        service = _open_service(ctx, config)
        draft = ItemDraft(
            id=item_id,
            name=name,
            description=description,
            difficulty=difficulty,
            target_count=target,
        )
        created = service.create_item(category_id, letter, draft, actor="cli")
    except (ConfigError, CatalogError, ValueError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=created.model_dump(mode="json"))
        return
    _emit_message(
        f"[green]Added {created.name} ({created.id}) to {category_id}/{created.letter}.[/green]",
        quiet=_quiet_enabled(ctx, quiet, config),
    )


@cli.command()
@click.argument("category_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the aggregate as JSON.")
@click.pass_context
def recompute(ctx: click.Context, category_id: str, json_output: bool) -> None:
    """Recompute and store the aggregate counters for CATEGORY_ID."""
    try:
        config = _load_config(ctx)
        aggregate = _open_service(ctx, config).recompute_aggregates(category_id)
    except (ConfigError, CatalogError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=aggregate.model_dump(mode="json"))
        return
    console.print(_aggregate_table(f"Aggregate for {category_id}", aggregate))
    for anomaly in aggregate.anomalies:
        console.print(f"[yellow]{anomaly.letter} {anomaly.item_id}: {anomaly.message}[/yellow]")


@cli.command()
@click.argument("category_id", required=False)
@click.option("--limit", type=click.IntRange(min=1), help="Maximum entries to display.")
@click.option("--json", "json_output", is_flag=True, help="Emit the backlog as JSON.")
@click.pass_context
def backlog(
    ctx: click.Context, category_id: str | None, limit: int | None, json_output: bool
) -> None:
    """Show items awaiting acquisition, most urgent first.

    Without CATEGORY_ID the backlog spans every category.
    """
    try:
        config = _load_config(ctx)
        service = _open_service(ctx, config)
        effective_limit = limit or config.cli.backlog_limit
        if category_id:
            entries = service.rank_backlog(category_id)[:effective_limit]
        else:
            entries = service.platform_backlog(limit=effective_limit)
    except (ConfigError, CatalogError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=[entry.model_dump(mode="json") for entry in entries])
        return

    table = Table(title=f"Backlog for {category_id or 'all categories'}")
    table.add_column("Score", justify="right")
    table.add_column("Category")
    table.add_column("Letter")
    table.add_column("Item")
    table.add_column("Approved", justify="right")
    table.add_column("Attempts", justify="right")
    for entry in entries:
        table.add_row(
            str(entry.score),
            entry.category_id,
            entry.letter,
            entry.item_name,
            f"{entry.approved_count}/{entry.target_count}",
            str(entry.search_attempts),
        )
    console.print(table)
    if not entries:
        console.print("[green]Nothing awaiting acquisition.[/green]")


@cli.command()
@click.argument("category_id", required=False)
@click.option("--platform", is_flag=True, help="Analyze coverage across every category.")
@click.option("--json", "json_output", is_flag=True, help="Emit the report as JSON.")
@click.pass_context
def gaps(ctx: click.Context, category_id: str | None, platform: bool, json_output: bool) -> None:
    """Report letters lacking usable content.

    Raises:
        click.ClickException: If neither CATEGORY_ID nor --platform is given.
    """
    try:
        if platform == bool(category_id):
            raise click.ClickException("Provide either CATEGORY_ID or --platform.")
        config = _load_config(ctx)
        service = _open_service(ctx, config)
        if platform:
            report: Any = service.analyze_platform_gaps()
        else:
            report = service.analyze_gaps(category_id or "")
    except (ConfigError, CatalogError, click.ClickException) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=report.model_dump(mode="json"))
        return

    if platform:
        table = Table(title=f"Letter coverage across {report.total_categories} categories")
        table.add_column("Letter")
        table.add_column("With content", justify="right")
        table.add_column("Rate", justify="right")
        for coverage in report.letters:
            table.add_row(
                coverage.letter,
                f"{coverage.categories_with_content}/{coverage.total_categories}",
                f"{coverage.completion_rate:.2f}",
            )
        console.print(table)
        console.print(f"Overall completion: {report.overall_completion_percentage}%")
        for recommendation in report.recommendations:
            console.print(f"[yellow]{recommendation.description}[/yellow]")
        return

    table = Table(title=f"Gaps for {report.category_name}")
    table.add_column("Letter")
    table.add_column("Items", justify="right")
    table.add_column("Usable", justify="right")
    table.add_column("Status")
    for gap in report.letters:
        table.add_row(gap.letter, str(gap.total_items), str(gap.usable_items), gap.status)
    console.print(table)
    console.print(f"Completeness: {report.completeness_percentage}%")
    for recommendation in report.recommendations:
        console.print(f"[yellow]{recommendation.message}[/yellow]")


@cli.command()
@click.argument("category_id")
@click.argument("item_ids", nargs=-1, required=True)
@click.option(
    "--status",
    "desired",
    type=click.Choice([status.value for status in PublicationStatus]),
    default=PublicationStatus.PUBLISHED.value,
    show_default=True,
    help="Publication status to apply.",
)
@click.option(
    "--actor", default="cli", show_default=True, help="Operator recorded in the audit log."
)
@click.option("--json", "json_output", is_flag=True, help="Emit per-item results as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def publish(
    ctx: click.Context,
    category_id: str,
    item_ids: Sequence[str],
    desired: str,
    actor: str,
    json_output: bool,
    quiet: bool,
) -> None:
    """Change the publication status of ITEM_IDS in CATEGORY_ID.

    Items are processed independently; failures are listed and the command
    exits non-zero when any item was rejected.
    """
    try:
        config = _load_config(ctx)
        result = _open_service(ctx, config).bulk_publication_change(
            category_id, list(item_ids), PublicationStatus(desired), actor=actor
        )
    except (ConfigError, CatalogError) as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=result.model_dump(mode="json"))
    else:
        quiet_enabled = _quiet_enabled(ctx, quiet, config)
        for entry in result.results:
            if entry.success:
                _emit_message(f"[green]{entry.item_id}: {desired}[/green]", quiet=quiet_enabled)
            else:
                _emit_message(
                    f"[red]{entry.item_id}: {entry.error}[/red]", quiet=quiet_enabled, mode="error"
                )
        _emit_message(
            f"[green]publish summary for {category_id}: "
            f"succeeded={result.succeeded}, failed={result.failed}.[/green]",
            quiet=quiet_enabled,
        )
    if result.failed:
        ctx.exit(1)


@cli.group()
def config() -> None:
    """Manage abcatalog configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException(
            "KEY must specify a dotted path such as 'quality.min_quality_threshold'."
        )

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=CatalogConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    # Only the timestamp line differs when the value was already set.
    meaningful = [
        line
        for line in diff
        if line.startswith(("+", "-"))
        and not line.startswith(("+++", "---", "+# Last updated", "-# Last updated"))
    ]
    if not meaningful:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
