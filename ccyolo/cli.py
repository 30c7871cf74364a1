"""
CLI for ccyolo.

Provides the hook entry point used by Claude Code plus commands to inspect
and tune the permission filter: status, enable/disable, presets, fixture
tests, API key check, and cache maintenance.
"""

import sys
import logging
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ccyolo import __version__
from ccyolo.cache import FileCacheStore
from ccyolo.config import (
    cache_dir,
    config_path,
    load_config,
    log_path,
    presets_dir,
    resolve_api_key,
    save_config,
)
from ccyolo.errors import CcyoloError, CredentialError, TransportError
from ccyolo.evaluator import SafetyEvaluator, validate_credential
from ccyolo.log import setup_cli_logging
from ccyolo.models import Operation
from ccyolo.profiles import (
    BUILTIN_PROFILES,
    Fixture,
    Profile,
    ProfileStore,
    available_presets,
    derive_profile,
    fixture_as_json,
    get_profile,
    is_valid_preset_name,
)
from ccyolo import rules


console = Console()
logger = logging.getLogger(__name__)


def _store() -> ProfileStore:
    return ProfileStore(presets_dir())


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """ccyolo - Smart permission filter for Claude Code.

    Auto-approves safe operations using static rules, a local cache and
    Claude API evaluation. USE AT YOUR OWN RISK.
    """
    setup_cli_logging(verbose)
    if ctx.invoked_subcommand is None:
        ctx.invoke(status)


@main.command(hidden=True)
def hook():
    """Handle one Claude Code permission request (internal)."""
    from ccyolo.hook import run

    sys.exit(run(click.get_text_stream("stdin"), click.get_text_stream("stdout")))


@main.command()
def version():
    """Print the ccyolo version."""
    console.print(f"ccyolo {__version__}")


@main.command()
def status():
    """Show ccyolo status."""
    config = load_config()
    state = "[green]ENABLED[/green]" if config.enabled else "[yellow]DISABLED[/yellow]"
    key_status = "configured" if resolve_api_key(config) else "[red]NOT SET[/red]"
    entries = FileCacheStore(cache_dir()).count()

    console.print(Panel(
        f"Status:  {state}\n"
        f"Preset:  {escape(config.preset)}\n"
        f"Model:   {escape(config.model)}\n"
        f"API Key: {key_status}\n"
        f"Cache:   {config.cache_ttl}s TTL, {entries} entries\n"
        f"Logging: {'enabled' if config.logging else 'disabled'}",
        title=f"ccyolo {__version__}",
    ))


def _save_or_exit(config):
    try:
        save_config(config)
    except OSError as e:
        console.print(f"[red]Error:[/red] cannot write {config_path()}: {escape(str(e))}")
        sys.exit(1)


def _set_enabled(enabled: bool):
    config = load_config()
    config.enabled = enabled
    _save_or_exit(config)
    console.print(f"ccyolo: {'ENABLED' if enabled else 'DISABLED'}")


@main.command()
def enable():
    """Enable ccyolo auto-approval."""
    _set_enabled(True)


@main.command()
def disable():
    """Disable ccyolo auto-approval."""
    _set_enabled(False)


@main.group(name="log")
def log_group():
    """Turn the hook's side log on or off."""
    pass


@log_group.command(name="enable")
def log_enable():
    """Write hook decisions to ~/.ccyolo/ccyolo.log."""
    config = load_config()
    config.logging = True
    _save_or_exit(config)
    console.print("Logging: ENABLED")
    console.print(f"Log file: {log_path()}")


@log_group.command(name="disable")
def log_disable():
    """Stop writing the hook's side log."""
    config = load_config()
    config.logging = False
    _save_or_exit(config)
    console.print("Logging: DISABLED")


# --- Presets ---

@main.group(invoke_without_command=True)
@click.pass_context
def preset(ctx: click.Context):
    """List, inspect, select, or create safety presets.

    \b
    Built-in presets:
      strict      - Only auto-approve read operations
      balanced    - Auto-approve common dev tasks (default)
      permissive  - Auto-approve almost everything

    Custom presets live in ~/.ccyolo/presets/<name>.json
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(preset_list)


@preset.command(name="list")
def preset_list():
    """List built-in and custom presets."""
    config = load_config()
    store = _store()
    custom = store.list_names()

    table = Table(title="Presets")
    table.add_column("", width=1)
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Description")
    for name in available_presets(store):
        source = "custom" if name in custom else "built-in"
        if name in custom and name in BUILTIN_PROFILES:
            source = "custom (overrides built-in)"
        marker = "*" if name == config.preset else ""
        table.add_row(marker, escape(name), source, escape(get_profile(name, store).description))
    console.print(table)


@preset.command(name="use")
@click.argument("name")
def preset_use(name: str):
    """Select the active preset."""
    store = _store()
    if name not in available_presets(store):
        console.print(f"[red]Invalid preset:[/red] {escape(name)}")
        console.print("Use 'ccyolo preset list' to list available presets")
        console.print("Use 'ccyolo preset create <name>' to create a custom preset")
        sys.exit(1)

    config = load_config()
    config.preset = name
    _save_or_exit(config)
    console.print(f"Preset set to: [bold]{escape(name)}[/bold]")


def _rule_lines(rule_list) -> str:
    if not rule_list:
        return "  (none)"
    return "\n".join(f"  {escape(r.tool)}: {escape(r.pattern)}" for r in rule_list)


@preset.command(name="show")
@click.argument("name", required=False)
@click.option("--prompt", "show_prompt", is_flag=True, help="Also print the evaluator prompt")
def preset_show(name: Optional[str], show_prompt: bool):
    """Show preset details (defaults to the active preset)."""
    name = name or load_config().preset
    profile = get_profile(name, _store())
    if profile.name != name:
        console.print(f"[yellow]Preset '{escape(name)}' not usable, showing '{profile.name}'[/yellow]\n")

    console.print(f"[bold]Preset:[/bold] {escape(profile.name)}")
    console.print(f"[bold]Description:[/bold] {escape(profile.description)}\n")
    console.print("[bold]Always Allow:[/bold]")
    console.print(_rule_lines(profile.allow))
    console.print("\n[bold]Always Deny:[/bold]")
    console.print(_rule_lines(profile.deny))
    console.print(f"\n[dim]{len(profile.tests)} test fixtures[/dim]")
    if show_prompt:
        console.print(Panel(escape(profile.prompt), title="Evaluator prompt"))


@preset.command(name="create")
@click.argument("name")
@click.argument("base", required=False, default="balanced")
def preset_create(name: str, base: str):
    """Create a custom preset NAME copied from BASE (default: balanced)."""
    if not is_valid_preset_name(name):
        console.print(f"[red]Invalid preset name:[/red] {escape(name)}")
        console.print("Names may not contain path separators or '..'")
        sys.exit(1)

    store = _store()
    if store.exists(name):
        console.print(f"[yellow]Preset '{escape(name)}' already exists[/yellow]")
        console.print(f"Edit: {store.path_for(name)}")
        return

    base_profile = get_profile(base, store)
    try:
        path = store.save(derive_profile(base_profile, name))
    except OSError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    console.print(f"[green][OK][/green] Created preset '{escape(name)}' based on '{escape(base_profile.name)}'")
    console.print(f"Edit: {path}")


# --- Fixture tests ---

def evaluate_fixture(
    fixture: Fixture,
    profile: Profile,
    evaluator: Optional[SafetyEvaluator],
) -> tuple[Optional[bool], str]:
    """Run one fixture through rules and, optionally, the evaluator.

    Returns (result, source). None means "would ask the user". The cache
    is never read or written, so every run is a fresh evaluation.
    """
    operation = Operation(fixture.tool, fixture.input, profile.name)
    rule_result = rules.evaluate(operation, profile)
    if rule_result is not None:
        return rule_result, "rule"
    if evaluator is None:
        return None, "no-rule"
    try:
        verdict = evaluator.evaluate_safety(profile.prompt, fixture.tool, fixture.input)
    except CcyoloError as e:
        logger.debug("fixture %s: evaluator error: %s", fixture.name, e)
        return None, "api-error"
    return verdict.approve, "llm"


@main.command(name="test")
@click.option("--rules-only", is_flag=True, help="Only test static rules, skip LLM evaluation")
@click.option("--verbose", "-v", "show_all", is_flag=True, help="Show details for each test")
def run_tests(rules_only: bool, show_all: bool):
    """Run the active preset's test fixtures.

    Each fixture is a simulated hook input with an expected outcome
    (allow or ask). Exits 1 if any fixture fails.
    """
    config = load_config()
    profile = get_profile(config.preset, _store())

    console.print(f"Testing preset: [bold]{escape(profile.name)}[/bold]")
    console.print(f"Model: {escape(config.model)}")

    evaluator = None
    if not rules_only:
        api_key = resolve_api_key(config)
        if api_key:
            evaluator = SafetyEvaluator(api_key=api_key, model=config.model)
        else:
            console.print("[yellow]Warning: No API key configured, falling back to rules-only mode[/yellow]")
    console.print("Mode: " + ("full (rules + LLM)" if evaluator else "rules-only (skipping LLM)") + "\n")

    if not profile.tests:
        console.print("No test cases defined for this preset.")
        return

    passed = failed = 0
    for i, fixture in enumerate(profile.tests, 1):
        result, source = evaluate_fixture(fixture, profile, evaluator)
        actual = "allow" if result is True else "ask"
        ok = actual == fixture.expect
        if ok:
            passed += 1
        else:
            failed += 1

        if show_all or not ok:
            icon = "[green]✓[/green]" if ok else "[red]✗[/red]"
            console.print(f"{icon} [{i}] {escape(fixture.name)}")
            console.print(f"    Tool: {escape(fixture.tool)}")
            console.print(f"    Expected: {fixture.expect.upper()}, Got: {actual.upper()} ({source})")
            if not ok:
                console.print(f"    Input: {escape(fixture_as_json(fixture))}")
            console.print()
        else:
            console.print(f"[green]✓[/green] {escape(fixture.name)}")

    console.print(f"\nResults: {passed} passed, {failed} failed (total: {len(profile.tests)})")
    if failed:
        sys.exit(1)


# --- Self-check ---

@main.command()
def check():
    """Check ccyolo configuration and validate the API key."""
    config = load_config()
    all_good = True

    console.print("[bold]ccyolo Self-Check[/bold]\n")
    console.print(f"Config file:        {config_path()}")

    api_key = resolve_api_key(config)
    if not api_key:
        console.print("API key:            [red]MISSING[/red]")
        console.print("  Set CCYOLO_API_KEY or ANTHROPIC_API_KEY")
        all_good = False
    else:
        console.print("API key:            configured")
        try:
            validate_credential(api_key)
            console.print("API key valid:      [green]OK[/green]")
        except (CredentialError, TransportError) as e:
            console.print(f"API key valid:      [red]FAILED[/red] ({escape(str(e))})")
            all_good = False

    console.print(f"Enabled:            {'yes' if config.enabled else 'no (run ccyolo enable)'}")
    profile = get_profile(config.preset, _store())
    console.print(f"Preset:             {escape(config.preset)}")
    if profile.name != config.preset:
        console.print(f"  [yellow]Warning: preset not usable, using '{profile.name}'[/yellow]")
        all_good = False
    console.print(f"Model:              {escape(config.model)}")
    console.print(f"Logging:            {'enabled' if config.logging else 'disabled'}")

    console.print()
    if all_good:
        console.print("[green]All checks passed![/green]")
    else:
        console.print("[yellow]Some checks failed. Please fix the issues above.[/yellow]")
        sys.exit(1)


# --- Cache ---

@main.group()
def cache():
    """Manage the decision cache."""
    pass


@cache.command(name="clear")
def cache_clear():
    """Delete every cached verdict."""
    store = FileCacheStore(cache_dir())
    count = store.count()
    store.clear()
    console.print(f"[green][OK][/green] Cleared {count} cached decisions")


if __name__ == "__main__":
    main()
