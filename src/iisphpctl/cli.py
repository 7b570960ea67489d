"""Typer-powered command line interface for ``iisphpctl``.

``iisphpctl converge`` drives a Windows host to a working IIS + PHP FastCGI
site. The remaining commands are read-only helpers that resolve download
locations and show the effective configuration.
"""
from __future__ import annotations

import json
import logging
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import PHP_VERSION_PATTERN, AppConfig, ConfigError, load_config
from .converge import ConvergencePipeline, build_collaborators, resolve_download
from .errors import ConvergenceError, PrivilegeDenied
from .exit_codes import ExitCode
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .models import ConvergenceReport
from .providers import is_elevated

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to iisphpctl's YAML config file.",
)

SITE_OPTION = typer.Option(None, "--site", help="Site and application pool name.")
HOST_HEADER_OPTION = typer.Option(
    None,
    "--host-header",
    help="Host header for the HTTP binding (defaults to the site name).",
)
CONTENT_PATH_OPTION = typer.Option(
    None,
    "--path",
    file_okay=False,
    help="Physical content directory for the site.",
)
PHP_VERSION_OPTION = typer.Option(
    None,
    "--php",
    help="PHP version to install, as a dotted triplet (e.g. 8.3.14).",
)
INSTALL_PATH_OPTION = typer.Option(
    None,
    "--install-path",
    file_okay=False,
    help="Directory the PHP archive is extracted into.",
)
PORT_OPTION = typer.Option(None, "--port", help="HTTP port for the site binding.")
STRATEGY_OPTION = typer.Option(
    None,
    "--strategy",
    help=(
        "How an existing site is handled: reconcile (only rebuild a site whose path, "
        "pool or bindings differ, the default) or recreate (delete and recreate the site "
        "on every run, for parity with destroy-and-recreate provisioning)."
    ),
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the result as JSON.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Provision IIS with a PHP FastCGI site on a Windows host.

        Every step checks the current host state first and only applies the
        changes that are missing, so the converge command is safe to re-run.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect iisphpctl configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    locks: LockManager
    logger: StructuredLogger


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("iisphpctl")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)


def _build_runtime(config: AppConfig) -> RuntimeContext:
    return RuntimeContext(
        config=config,
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
    )


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=int(ExitCode.VALIDATION)) from exc
    runtime = _build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the iisphpctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug diagnostics on stderr.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose)
    if version:
        runtime = _ensure_runtime(ctx, config_file, lock_timeout)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"iisphpctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file, lock_timeout)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.PROVIDER,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _converge_overrides(
    *,
    site: str | None,
    host_header: str | None,
    content_path: Path | None,
    php_version: str | None,
    install_path: Path | None,
    port: int | None,
    strategy: str | None,
) -> dict[str, object]:
    site_values: dict[str, object] = {}
    if site is not None:
        site_values["name"] = site
    if host_header is not None:
        site_values["host_header"] = host_header
    if content_path is not None:
        site_values["content_path"] = str(content_path)
    if port is not None:
        site_values["port"] = port
    if strategy is not None:
        site_values["strategy"] = strategy

    php_values: dict[str, object] = {}
    if php_version is not None:
        php_values["version"] = php_version
    if install_path is not None:
        php_values["install_path"] = str(install_path)

    overrides: dict[str, object] = {}
    if site_values:
        overrides["site"] = site_values
    if php_values:
        overrides["php"] = php_values
    return overrides


def _render_report(report: ConvergenceReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Step", style="bold")
    table.add_column("Changed")
    table.add_column("Detail")
    for step in report.steps:
        changed = "[green]yes[/green]" if step.changed else "no"
        table.add_row(step.name, changed, escape(step.detail))
    console.print(table)
    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")


@app.command()
def converge(
    ctx: typer.Context,
    site: str | None = SITE_OPTION,
    host_header: str | None = HOST_HEADER_OPTION,
    content_path: Path | None = CONTENT_PATH_OPTION,
    php_version: str | None = PHP_VERSION_OPTION,
    install_path: Path | None = INSTALL_PATH_OPTION,
    port: int | None = PORT_OPTION,
    strategy: str | None = STRATEGY_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Bring IIS, the PHP runtime and the site to the desired state."""
    runtime = _get_runtime(ctx)
    overrides = _converge_overrides(
        site=site,
        host_header=host_header,
        content_path=content_path,
        php_version=php_version,
        install_path=install_path,
        port=port,
        strategy=strategy,
    )

    with runtime.logger.operation(
        "converge",
        args={"overrides": overrides, "json": json_output},
        target={"kind": "site", "name": site or runtime.config.site.name},
    ) as op:
        config = runtime.config
        if overrides:
            try:
                config = load_config(
                    config_file=config.config_file,
                    overrides={"lock_timeout": config.lock_timeout, **overrides},
                )
            except ConfigError as exc:
                _command_error(op, str(exc), rc=ExitCode.VALIDATION)

        pipeline = ConvergencePipeline(
            build_collaborators(config),
            config,
            locks=runtime.locks,
            scope=op,
            privilege_check=is_elevated,
        )
        try:
            report = pipeline.run()
        except PrivilegeDenied as exc:
            _command_error(op, str(exc), rc=ExitCode.PRIVILEGE)
        except LockTimeoutError as exc:
            _command_error(op, str(exc), rc=ExitCode.LOCKED)
        except ConvergenceError as exc:
            _command_error(op, str(exc), rc=ExitCode.PROVIDER)

        if json_output:
            console.print_json(data=report.to_dict())
        else:
            _render_report(report)

        context = {"site": config.site.name, "steps": len(report.steps)}
        if report.reboot_required:
            message = "A reboot is required to finish enabling features; reboot and re-run."
            if not json_output:
                console.print(f"[yellow]{message}[/yellow]")
            op.warning(
                message,
                changed=report.changed,
                rc=int(ExitCode.REBOOT_REQUIRED),
                context=context,
            )
            raise typer.Exit(code=int(ExitCode.REBOOT_REQUIRED))

        summary = f"Converged site {config.site.name} ({report.changed} step(s) changed)."
        if report.warnings:
            op.warning(summary, changed=report.changed, warnings=report.warnings, context=context)
        else:
            op.success(summary, changed=report.changed, context=context)
        if not json_output:
            console.print(f"[green]{summary}[/green]")


@app.command("php-url")
def php_url(
    ctx: typer.Context,
    version: str = typer.Argument(..., help="PHP version as a dotted triplet."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show where the Windows build of a PHP version is downloaded from."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "php-url",
        args={"version": version, "json": json_output},
        target={"kind": "php", "version": version},
    ) as op:
        if not PHP_VERSION_PATTERN.match(version.strip()):
            _command_error(
                op,
                f"PHP version must be a dotted triplet such as 8.3.14. Got {version!r}.",
                rc=ExitCode.VALIDATION,
            )
        download = resolve_download(version, runtime.config.php.download_base)
        data = {
            "version": download.version,
            "toolchain": download.toolchain,
            "file_name": download.file_name,
            "url": download.url,
            "archive_url": download.archive_url,
        }
        if json_output:
            console.print_json(data=data)
        else:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Key", style="bold")
            table.add_column("Value")
            for key, value in data.items():
                table.add_row(key, value)
            console.print(table)
        op.success("Resolved PHP download location.", changed=0, context=data)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, (dict, list)):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
