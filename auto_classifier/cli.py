#!/usr/bin/env python3
"""
Auto Classifier CLI

Classify Obsidian notes with a chat-completion model and write the result
back as tags, wikilinks, frontmatter values or a title suffix.

Usage:
    # Create a settings file in the current directory
    auto-classifier config init
    auto-classifier config set api_key sk-...
    auto-classifier config set vault.path ~/Notes
    auto-classifier config set command_option.refs "Science, History, Art"

    # Classify one note
    auto-classifier classify-title --note "Inbox/Black holes.md"
    auto-classifier classify-selection --note "Inbox/Essay.md" --select 120:480

    # Classify every note of the vault
    auto-classifier classify-content --all

    # Stop a running classification (same as Ctrl-C in its terminal)
    auto-classifier abort
"""

import asyncio
import logging
import os
import re
import signal
import sys
import tempfile
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .cancellation import AbortController
from .classifier import APP_NAME, Classifier
from .config_loader import ConfigLoader, default_settings_data, get_config_loader
from .errors import ClassificationAborted, ClassifierError, ConfigError
from .models import AutoClassifierSettings, InputType, OutLocation, OutType
from .vault import Selection, Vault

console = Console()

PID_FILE = Path(tempfile.gettempdir()) / "auto_classifier.pid"


def setup_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def get_loader(ctx: click.Context) -> ConfigLoader:
    return ctx.obj['loader']


def get_vault(settings: AutoClassifierSettings, vault_option: Optional[Path]) -> Vault:
    """Vault from --vault or the settings"""
    vault_path = vault_option or settings.vault_path
    if not vault_path:
        console.print("[red]Error: Vault path not configured[/red]")
        console.print("[yellow]Set vault.path in the settings file, VAULT_PATH, or pass --vault[/yellow]")
        sys.exit(1)
    try:
        return Vault(Path(vault_path).expanduser())
    except ClassifierError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


def get_tags_or_exit(vault: Vault, filter_regex: Optional[str]):
    """Vault tags matching `filter_regex`; an invalid pattern is a usage error"""
    try:
        return vault.get_tags(filter_regex)
    except re.error as e:
        console.print(f"[red]Error: invalid regex {escape(repr(filter_regex))}: {escape(str(e))}[/red]")
        sys.exit(2)


async def _run_with_abort(controller: AbortController, run):
    """Run `run(token)` with SIGINT/SIGTERM wired to controller.abort()"""
    loop = asyncio.get_running_loop()

    def abort():
        console.print(f"[yellow]⛔ {APP_NAME}: aborting...[/yellow]")
        controller.abort()

    handled = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, abort)
            handled.append(sig)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on Windows; Ctrl-C raises KeyboardInterrupt instead
            pass
    try:
        return await run(controller.token)
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)


def _write_pid_file():
    PID_FILE.write_text(str(os.getpid()), encoding='utf-8')


def _remove_pid_file():
    try:
        if PID_FILE.read_text(encoding='utf-8').strip() == str(os.getpid()):
            PID_FILE.unlink()
    except OSError:
        pass


def _print_stats(title: str, stats: dict):
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)


# ==================== CLI Groups ====================

@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Settings file (default: ./auto_classifier.yaml or $AUTO_CLASSIFIER_CONFIG)')
@click.option('--log-level', default='WARNING', show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: str):
    """Auto Classifier - classify Obsidian notes with a chat-completion model"""
    setup_logging(log_level)
    ctx.ensure_object(dict)
    try:
        ctx.obj['loader'] = get_config_loader(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


# ==================== Classification Commands ====================

def _make_classify_command(name: str, input_type: InputType, help_text: str):
    @click.option('--note', 'note_path', help='Note path, relative to the vault')
    @click.option('--all', 'whole_vault', is_flag=True, help='Classify every note of the vault')
    @click.option('--vault', 'vault_option', type=click.Path(file_okay=False, path_type=Path),
                  help='Vault folder (overrides settings)')
    @click.option('--cursor', type=int, help='Cursor offset for output at the cursor (default: end of note)')
    @click.option('--out-type', type=click.Choice([t.value for t in OutType]), help='Override output type')
    @click.option('--out-location', type=click.Choice([loc.value for loc in OutLocation]),
                  help='Override output location')
    @click.option('--overwrite/--no-overwrite', default=None, help='Override the overwrite setting')
    @click.option('--refs-from-vault', 'refs_regex', metavar='REGEX',
                  help='Use the vault tags matching REGEX as reference tags')
    @click.pass_context
    def command(ctx, note_path, whole_vault, vault_option, cursor, out_type, out_location, overwrite,
                refs_regex, select=None):
        loader = get_loader(ctx)
        try:
            settings = loader.load_settings()
        except ConfigError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)

        if bool(note_path) == bool(whole_vault):
            console.print("[red]Error: pass exactly one of --note or --all[/red]")
            sys.exit(1)

        vault = get_vault(settings, vault_option)
        updates = {}
        if out_type:
            updates['out_type'] = OutType(out_type)
        if out_location:
            updates['out_location'] = OutLocation(out_location)
        if overwrite is not None:
            updates['overwrite'] = overwrite
        if refs_regex:
            updates['refs'] = get_tags_or_exit(vault, refs_regex)
        option = settings.command_option.model_copy(update=updates)

        classifier = Classifier(settings.model_copy(update={'command_option': option}), vault=vault,
                                console=console)
        controller = AbortController()

        async def run(token):
            if whole_vault:
                return await classifier.classify_vault(input_type, token)
            selection = Selection.parse(select) if select else None
            document = vault.open_note(note_path, selection=selection, cursor=cursor)
            return await classifier.classify_active(input_type, document, token)

        _write_pid_file()
        try:
            with console.status(f"{APP_NAME}: Processing.."):
                stats = asyncio.run(_run_with_abort(controller, run))
        except ClassificationAborted:
            console.print(f"[yellow]⛔ {APP_NAME}: aborted[/yellow]")
            sys.exit(130)
        except KeyboardInterrupt:
            console.print(f"\n[yellow]⛔ {APP_NAME}: aborted[/yellow]")
            sys.exit(130)
        except ValueError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(2)
        except ClassifierError as e:
            console.print(f"[red]⛔ {APP_NAME}: {escape(str(e))}[/red]")
            sys.exit(1)
        finally:
            _remove_pid_file()

        if whole_vault:
            return
        _print_stats(f"{name} ({note_path})", stats)
        if not stats['classified'] and (stats['failed'] or not stats['inputs']):
            sys.exit(1)

    command.__doc__ = help_text
    if input_type == InputType.SELECTION:
        command = click.option('--select', metavar='START:END', required=True,
                               help='Selected character range')(command)
    return cli.command(name)(command)


classify_selection = _make_classify_command(
    'classify-selection', InputType.SELECTION, "Classify tag from the selected range of a note")
classify_title = _make_classify_command(
    'classify-title', InputType.TITLE, "Classify tag from the note title")
classify_frontmatter = _make_classify_command(
    'classify-frontmatter', InputType.FRONTMATTER, "Classify tag from the note frontmatter")
classify_content = _make_classify_command(
    'classify-content', InputType.CONTENT, "Classify tag from the note content")
classify_callouts = _make_classify_command(
    'classify-callouts', InputType.CALLOUT, "Classify tag from the #new-highlight callouts of a note")


@cli.command('abort')
def abort_classification():
    """Abort the running classification"""
    try:
        pid = int(PID_FILE.read_text(encoding='utf-8').strip())
    except (OSError, ValueError):
        console.print("[yellow]No classification is running[/yellow]")
        return
    try:
        os.kill(pid, signal.SIGINT)
    except ProcessLookupError:
        console.print("[yellow]No classification is running[/yellow]")
        PID_FILE.unlink(missing_ok=True)
        return
    console.print(f"[yellow]⛔ {APP_NAME}: aborting...[/yellow]")


# ==================== Vault Commands ====================

@cli.command('tags')
@click.option('--filter', 'filter_regex', metavar='REGEX', help='Only tags matching REGEX')
@click.option('--vault', 'vault_option', type=click.Path(file_okay=False, path_type=Path),
              help='Vault folder (overrides settings)')
@click.pass_context
def list_tags(ctx, filter_regex: Optional[str], vault_option: Optional[Path]):
    """List the tags used in the vault"""
    try:
        settings = get_loader(ctx).load_settings()
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    vault = get_vault(settings, vault_option)
    tags = get_tags_or_exit(vault, filter_regex)
    if not tags:
        console.print("[yellow]No tags found[/yellow]")
        return
    for tag in tags:
        console.print(tag, markup=False, highlight=False)


# ==================== Settings Commands ====================

@cli.group('config')
def config_group():
    """Show and edit the settings file"""


@config_group.command('init')
@click.option('--force', is_flag=True, help='Overwrite an existing settings file')
@click.pass_context
def config_init(ctx, force: bool):
    """Write a settings file with the defaults"""
    loader = get_loader(ctx)
    if loader.config_path.exists() and not force:
        console.print(f"[yellow]{loader.config_path} already exists (use --force to overwrite)[/yellow]")
        return
    loader.config_data = default_settings_data()
    loader.save()
    console.print(f"[green]✓ Wrote {loader.config_path}[/green]")


@config_group.command('show')
@click.pass_context
def config_show(ctx):
    """Show the effective settings"""
    loader = get_loader(ctx)
    try:
        settings = loader.load_settings()
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title=f"Settings ({loader.config_path})")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    api_key = settings.api_key
    table.add_row("api_key", f"{api_key[:3]}...{api_key[-4:]}" if api_key else "[red]not set[/red]")
    table.add_row("base_url", escape(settings.base_url))
    table.add_row("timeout", str(settings.timeout))
    table.add_row("max_retries", str(settings.max_retries))
    table.add_row("reliability_threshold", str(settings.reliability_threshold))
    table.add_row("vault.path", escape(settings.vault_path) if settings.vault_path else "[red]not set[/red]")
    for key, value in settings.command_option.model_dump(mode='json').items():
        shown = value if isinstance(value, str) else yaml.safe_dump(value, default_flow_style=True).strip()
        if key in ('prompt_template', 'chat_role'):
            shown = shown if len(shown) <= 60 else shown[:57] + "..."
        table.add_row(f"command_option.{key}", escape(shown))
    console.print(table)

    errors = loader.validate_config()
    for error in errors:
        console.print(f"[yellow]⚠ {error}[/yellow]")


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set KEY (dotted, e.g. command_option.max_tags) to VALUE (parsed as YAML)"""
    loader = get_loader(ctx)
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed = value
    loader.set(key, parsed)
    try:
        loader.save()
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ {escape(f'{key} = {parsed!r}')}[/green]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
