# src/resequencer/cli.py
"""Resequencer Command Line Interface.

Entry point for the ``resequencer`` CLI tool.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Hashable, Iterator
from pathlib import Path
from typing import Any, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import BaseModel, ValidationError

from resequencer import __version__
from resequencer.bootstrap import build_runtime
from resequencer.contracts import (
    DispatcherConfigError,
    DispatcherNotFoundError,
    ReleasePolicy,
    ReleaseResult,
    ResequencerError,
    SequencedItem,
)
from resequencer.core.config import ResequencerSettings, load_settings, resolve_config
from resequencer.core.logging import configure_logging
from resequencer.plugins.manager import PluginManager

__all__ = ["app"]

app = typer.Typer(
    name="resequencer",
    help="Resequencer: release out-of-order sequenced items in order.",
    no_args_is_help=True,
)


class ItemRecord(BaseModel):
    """One input line of a replay file."""

    model_config = {"extra": "forbid"}

    correlation_key: str | int
    position: int
    total: int
    payload: Any = None
    reply_to: str | None = None

    def to_item(self) -> SequencedItem[Any]:
        return SequencedItem(
            correlation_key=self.correlation_key,
            position=self.position,
            total=self.total,
            payload=self.payload,
            reply_to=self.reply_to,
        )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"resequencer version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """Resequencer: release out-of-order sequenced items in order."""
    ctx.obj = {"verbose": verbose, "json_logs": json_logs}
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")


def _apply_logging_settings(ctx: typer.Context, config: ResequencerSettings) -> None:
    """Reconfigure logging from the settings file; command-line flags win."""
    flags = ctx.obj or {}
    configure_logging(
        json_output=flags.get("json_logs", False) or config.logging.json_output,
        level="DEBUG" if flags.get("verbose", False) else config.logging.level,
    )


def _load_settings_or_exit(settings_path: str | None) -> ResequencerSettings:
    """Load settings (or defaults), turning config errors into exit code 1."""
    if settings_path is None:
        return ResequencerSettings()

    path = Path(settings_path).expanduser()
    try:
        return load_settings(path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings_path}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings_path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _read_items(items_path: str) -> Iterator[SequencedItem[Any]]:
    """Yield items from a JSONL file ('-' reads stdin).

    Raises:
        typer.Exit: On unreadable files or malformed lines
    """
    if items_path == "-":
        lines: Iterator[str] = iter(sys.stdin)
        yield from _parse_lines(lines, "<stdin>")
        return

    path = Path(items_path).expanduser()
    if not path.exists():
        typer.echo(f"Error: Items file not found: {items_path}", err=True)
        raise typer.Exit(1)
    with path.open(encoding="utf-8") as handle:
        yield from _parse_lines(handle, str(path))


def _parse_lines(lines: Iterator[str], source: str) -> Iterator[SequencedItem[Any]]:
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            record = ItemRecord.model_validate(json.loads(line))
        except json.JSONDecodeError as e:
            typer.echo(f"{source}:{line_number}: invalid JSON: {e.msg}", err=True)
            raise typer.Exit(1) from None
        except ValidationError as e:
            errors = "; ".join(f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors())
            typer.echo(f"{source}:{line_number}: invalid item: {errors}", err=True)
            raise typer.Exit(1) from None
        yield record.to_item()


def _format_run(result: ReleaseResult[Any], output_format: Literal["console", "json"]) -> str:
    if output_format == "json":
        return json.dumps(
            {
                "correlation_key": result.correlation_key,
                "destination": result.destination,
                "positions": result.positions,
                "payloads": [item.payload for item in result.items],
                "retired": result.retired,
            },
            default=str,
        )
    suffix = " (retired)" if result.retired else ""
    return f"{result.correlation_key} -> {result.destination or '-'}: {result.positions}{suffix}"


@app.command()
def replay(
    ctx: typer.Context,
    items: str = typer.Argument(
        ...,
        help="JSONL file of items (correlation_key, position, total, payload[, reply_to]); '-' for stdin.",
    ),
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    policy: ReleasePolicy | None = typer.Option(
        None,
        "--policy",
        "-p",
        help="Override the release policy from settings.",
    ),
    output_format: str = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (one object per run).",
    ),
    flush_partial: bool = typer.Option(
        False,
        "--flush-partial",
        help="At end of input, release items of unfinished groups instead of only reporting them.",
    ),
) -> None:
    """Feed items through the resequencer and print every released run."""
    if output_format not in ("console", "json"):
        typer.echo(f"Error: unknown format '{output_format}' (expected console or json)", err=True)
        raise typer.Exit(1)
    fmt: Literal["console", "json"] = "json" if output_format == "json" else "console"

    config = _load_settings_or_exit(settings)
    if settings is not None:
        _apply_logging_settings(ctx, config)
    if policy is not None:
        config = config.model_copy(update={"release_policy": policy})

    try:
        runtime = build_runtime(config)
    except (DispatcherNotFoundError, DispatcherConfigError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    runs = 0
    try:
        for item in _read_items(items):
            result = runtime.engine.submit(item)
            if result.released:
                runs += 1
                typer.echo(_format_run(result, fmt))

        unfinished = runtime.engine.flush(release_leftover=flush_partial)
        for group in unfinished:
            positions = [item.position for item in group.leftover]
            action = "released" if flush_partial else "unreleased"
            typer.echo(
                f"Incomplete group {_display_key(group.correlation_key)}: watermark={group.watermark}, {action}={positions}",
                err=True,
            )
    except ResequencerError as e:
        # Raised by the dispatcher; items up to the failing run were delivered
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        if runtime.reaper is not None:
            runtime.reaper.stop()
        runtime.dispatcher.close()

    metrics = runtime.engine.get_metrics()
    rejected = sum(metrics["rejected"].values())
    typer.echo(
        f"Submitted {metrics['submitted']}, released {metrics['released_items']} in {runs} run(s), "
        f"rejected {rejected}, incomplete groups {len(unfinished)}",
        err=True,
    )


def _display_key(key: Hashable) -> str:
    return repr(key) if not isinstance(key, str) else key


@app.command()
def validate(
    ctx: typer.Context,
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate a settings file and print the resolved configuration."""
    config = _load_settings_or_exit(settings)
    _apply_logging_settings(ctx, config)

    manager = PluginManager()
    manager.register_builtin_plugins()
    try:
        manager.create_dispatcher(config.dispatcher.plugin, config.dispatcher.options).close()
    except (DispatcherNotFoundError, DispatcherConfigError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(json.dumps(resolve_config(config), indent=2, sort_keys=True))


@app.command()
def plugins() -> None:
    """List available dispatcher plugins."""
    manager = PluginManager()
    manager.register_builtin_plugins()
    for cls in manager.get_dispatchers():
        doc = (cls.__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        typer.echo(f"{cls.name:<10} {summary}")


if __name__ == "__main__":
    app()
