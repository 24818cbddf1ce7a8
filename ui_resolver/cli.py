# ui_resolver/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Convenience commands to inspect/validate a locator registry, view effective
config, render a persisted audit summary, and probe keys against a live page.
Thin wrapper around the registry, audit renderers and action facade.
"""

import json
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console

from ui_resolver.audit.render import build_plain_summary, load_summary, rich_summary_table
from ui_resolver.core.errors import LocatorError
from ui_resolver.core.registry import Registry
from ui_resolver.selectors.locator import parse_selector
from ui_resolver.utils.config import get_settings
from ui_resolver.utils.logger import bind, get_logger, set_log_level, unbind


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _registry(path: Optional[str]) -> Registry:
    return Registry(Path(path).resolve() if path else None)


def _authoring_defects(registry: Registry) -> List[str]:
    """Zero-candidate specs and role selectors whose name pattern does not compile."""
    problems: List[str] = []
    for key, spec in registry.load().items():
        if not spec.candidates:
            problems.append(f"{key}: no candidates")
        for i, candidate in enumerate(spec.candidates, start=1):
            try:
                parse_selector(candidate)
            except ValueError as e:
                problems.append(f"{key} [#{i}]: {e}")
    return problems


registry_option = click.option(
    "--registry", "registry_path",
    type=click.Path(exists=True, file_okay=True, dir_okay=True),
    default=None,
    help="Registry file or directory (default: LOCATORS_PATH or the bundled registry)",
)


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
@click.version_option(package_name="ui-resolver")
def cli(log_level: Optional[str]):
    # Initialize settings + logger once at process start
    _ = get_settings()
    if log_level:
        set_log_level(log_level.upper())


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars)."""
    s = get_settings()
    data = {k: (str(v) if isinstance(v, Path) else getattr(v, "value", v)) for k, v in s.model_dump().items()}
    _echo_json(data)


@cli.command("keys")
@registry_option
@click.option("--filter", "needle", type=str, default=None, help="Only keys containing this text (case-insensitive)")
def cmd_keys(registry_path: Optional[str], needle: Optional[str]):
    """List registry keys."""
    reg = _registry(registry_path)
    try:
        keys = reg.all_keys()
    except LocatorError as e:
        click.echo(f"ERR {e}")
        sys.exit(1)

    if needle:
        keys = [k for k in keys if needle.lower() in k.lower()]
    if not keys:
        click.echo("No keys found.")
        return

    click.echo(f"Found {len(keys)} key(s) in {reg.source_location}:\n")
    for k in keys:
        click.echo(f" - {k}")


@cli.command("show")
@click.argument("key")
@registry_option
def cmd_show(key: str, registry_path: Optional[str]):
    """Dump one element spec (candidates, timeout, healer) plus nearby keys."""
    reg = _registry(registry_path)
    try:
        spec = reg.spec_for(key)
    except LocatorError as e:
        click.echo(f"ERR {e}")
        sys.exit(1)
    nearby = [k for k in reg.suggest(key) if k != key]
    _echo_json({**spec.model_dump(by_alias=True), "nearby": nearby})


@cli.command("validate")
@registry_option
def cmd_validate(registry_path: Optional[str]):
    """Load the registry and report authoring defects."""
    reg = _registry(registry_path)
    try:
        problems = _authoring_defects(reg)
    except LocatorError as e:
        click.echo(f"ERR {reg.source_location}  ->  {e}")
        sys.exit(1)

    for p in problems:
        click.echo(f"ERR {p}")
    if problems:
        sys.exit(1)
    click.echo(f"OK  {reg.source_location}  ->  {len(reg.all_keys())} key(s)")


@cli.command("audit-summary")
@click.argument("summary_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--markdown", is_flag=True, default=False, help="Print the markdown summary instead of a table")
def cmd_audit_summary(summary_file: str, markdown: bool):
    """Render a persisted audit-summary.json."""
    try:
        doc = load_summary(summary_file)
    except (ValueError, OSError) as e:
        click.echo(f"ERR {summary_file}  ->  {e}")
        sys.exit(1)

    if markdown:
        click.echo(build_plain_summary(doc))
        return
    Console().print(rich_summary_table(doc))


@cli.command("probe")
@click.argument("url")
@click.argument("keys", nargs=-1, required=True)
@registry_option
@click.option("--timeout", "timeout_ms", type=int, default=None, help="Per-candidate probe timeout (ms)")
def cmd_probe(url: str, keys: List[str], registry_path: Optional[str], timeout_ms: Optional[int]):
    """
    Open URL in a browser and print the candidate state for each key.

    Example:
      ui-resolver probe https://app.example.test/login login.username login.submit
    """
    from playwright.sync_api import sync_playwright

    from ui_resolver.audit.trail import AuditTrail
    from ui_resolver.core.actions import ActionFacade

    s = get_settings()
    log = get_logger(__name__)
    reg = _registry(registry_path)
    bind(probe_url=url)

    with sync_playwright() as p:
        browser_type = getattr(p, s.BROWSER_TYPE.value)
        browser = browser_type.launch(**s.playwright_launch_kwargs())
        try:
            page = browser.new_page()
            page.goto(url, timeout=s.PAGE_LOAD_TIMEOUT)
            ui = ActionFacade(page, reg, AuditTrail(s), attach=log.debug, settings=s)
            for key in keys:
                try:
                    click.echo(ui.debug_candidates(key, timeout_ms))
                except LocatorError as e:
                    click.echo(f"ERR {key}  ->  {e}")
        finally:
            browser.close()
            unbind("probe_url")


def main() -> None:
    cli(prog_name="ui-resolver")


if __name__ == "__main__":
    main()
