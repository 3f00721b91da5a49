"""CLI entry point for shellsense."""

from pathlib import Path

import click

from shellsense import __version__
from shellsense.config import get_config_path, load_config
from shellsense.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """shellsense - Terminal output triggers and shell metadata."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = get_config_path(config)
    ctx.obj["config"] = load_config(config)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"shellsense version {__version__}")


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Validate triggers and prompt patterns."""
    from shellsense.config import validate_config_file
    from shellsense.directory.prompt_pattern import compile_prompt_pattern
    from shellsense.errors import ConfigFileError, PromptPatternError
    from shellsense.triggers.conditions import condition_variables
    from shellsense.triggers.registry import TriggerSnapshot
    from shellsense.triggers.types import MatchMode

    config = ctx.obj["config"]
    config_path = ctx.obj["config_path"]
    failures = 0

    if config_path.exists():
        try:
            entry_errors = validate_config_file(config_path)
        except ConfigFileError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
        for error in entry_errors:
            failures += 1
            click.echo(f"Error: {error}", err=True)
    else:
        click.echo(f"No config file at {config_path}; checking defaults")

    snapshot = TriggerSnapshot.build(config.triggers.items)
    click.echo(f"{'Trigger':<30} {'Mode':<11} {'Status'}")
    click.echo("-" * 60)
    for compiled in snapshot.triggers:
        trigger = compiled.trigger
        status = "ok"
        if trigger.match_mode is MatchMode.VARIABLE and compiled.condition is not None:
            status = "ok (uses " + ", ".join(condition_variables(compiled.condition)) + ")"
        click.echo(f"{trigger.name[:30]:<30} {trigger.match_mode.value:<11} {status}")
    for error in snapshot.errors:
        failures += 1
        click.echo(f"Error: {error}", err=True)

    for template in config.prompt_patterns:
        try:
            compile_prompt_pattern(template)
            click.echo(f"Prompt pattern ok: {template}")
        except PromptPatternError as e:
            failures += 1
            click.echo(f"Error: {e}", err=True)

    if failures:
        click.echo(f"{failures} configuration error(s)", err=True)
        raise SystemExit(1)
    click.echo("Configuration ok")


@main.command()
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--workspace", "-w", default="default", help="Workspace id for trigger scope.")
@click.option("--chunk-size", default=4096, show_default=True, help="Bytes per fed chunk.")
@click.pass_context
def replay(ctx: click.Context, log_file: Path, workspace: str, chunk_size: int) -> None:
    """Replay recorded terminal output through the trigger engine."""
    import asyncio

    from shellsense.actions import NotificationRequest
    from shellsense.manager import SessionManager

    config = ctx.obj["config"]
    data = log_file.read_bytes()

    async def notify(request: NotificationRequest) -> None:
        click.echo(f"[notify] {request.title}: {request.body}")

    async def write(text: str) -> None:
        click.echo(f"[send] {text.rstrip()}")

    async def _replay():
        manager = SessionManager(config=config, notifier=notify)
        for error in manager.config_errors:
            click.echo(f"Error: {error}", err=True)

        session = await manager.create_session(
            "replay", workspace, writer=write, start=False
        )
        for offset in range(0, len(data), max(1, chunk_size)):
            result = session.feed(data[offset:offset + chunk_size])
            for event in result.events:
                click.echo(f"[event] {event}")
            for fired in await session.evaluate_once():
                click.echo(f"[fired] {fired.trigger.name}")
            await session.flush_notifications()

        click.echo("")
        click.echo(f"Directory: {session.resolved_dir or '-'}")
        click.echo(f"Tab state: {session.tab_state.value}")
        if session.auto_resume.enabled:
            click.echo(f"Auto-resume: {session.auto_resume.command}")
        variables = session.variables.as_dict()
        if variables:
            click.echo("Variables:")
            for name, value in sorted(variables.items()):
                click.echo(f"  {name} = {value}")
        await manager.close_all()

    asyncio.run(_replay())


@main.command("shell-init")
@click.option("--title/--no-title", default=True, help="Report window title (OSC 0).")
@click.option("--osc133/--no-osc133", default=True, help="Report prompt marks (OSC 133).")
@click.option("--cwd/--no-cwd", default=True, help="Report working directory (OSC 7).")
def shell_init(title: bool, osc133: bool, cwd: bool) -> None:
    """Print a shell integration snippet for bash or zsh."""
    from shellsense.shell_integration import build_shell_integration_snippet

    snippet = build_shell_integration_snippet(title=title, osc133=osc133, cwd=cwd)
    if snippet is None:
        click.echo("Error: nothing to enable", err=True)
        raise SystemExit(1)
    click.echo(snippet)
