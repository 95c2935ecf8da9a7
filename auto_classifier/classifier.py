"""
Core Classification Logic

Runs the prompt -> chat completion -> reply validation -> note update
pipeline for every input item of a note, for one note or a whole vault.

=== FAILURE HANDLING ===
- ConfigError (no API key, use_ref without refs): aborts the command
- ClassificationAborted: propagates, never counted as a failure
- anything else per item (empty input, API error, bad JSON, bad shape,
  document error): notice + log, then
    item_failure_policy=continue -> next input of the same note
    item_failure_policy=abort    -> rest of the note is dropped
  In whole-vault mode the next note is processed either way.

=== STATS ===
classify_note  -> {inputs, classified, skipped, failed}   (per input item)
classify_vault -> {total, classified, skipped, failed}    (per note)
"""

import logging
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.markup import escape

from .cancellation import CancellationToken
from .document import DocumentAdapter
from .errors import (
    APIResponseError,
    ClassificationAborted,
    ClassifierError,
    ConfigError,
    InputError,
)
from .llm_client import ChatGPTClient
from .models import (
    AggregatedOutput,
    AutoClassifierSettings,
    ClassificationRequest,
    CommandOption,
    InputType,
    ItemFailurePolicy,
)
from .response_parser import aggregate
from .vault import Vault

logger = logging.getLogger(__name__)

APP_NAME = "Auto Classifier"

ProgressCallback = Callable[[int, int, str], None]


class Classifier:
    """
    Runs classification commands against notes.

    Usage:
        classifier = Classifier(settings, vault=Vault(vault_path))
        await classifier.classify_active(InputType.TITLE, note, token)
        await classifier.classify_vault(InputType.CONTENT, token)
    """

    def __init__(
        self,
        settings: AutoClassifierSettings,
        llm_client: Optional[ChatGPTClient] = None,
        vault: Optional[Vault] = None,
        console: Optional[Console] = None,
    ):
        self.settings = settings
        self.llm_client = llm_client
        self.vault = vault
        self.console = console or Console()

    @property
    def option(self) -> CommandOption:
        return self.settings.command_option

    def _get_llm_client(self) -> ChatGPTClient:
        """Lazy-load LLM client"""
        if self.llm_client is None:
            self.llm_client = ChatGPTClient(
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
            )
        return self.llm_client

    # ------- [Notices] -------

    def notify_error(self, message: str):
        self.console.print(f"[red]⛔ {APP_NAME}: {escape(message)}[/red]")

    def notify_success(self, message: str):
        self.console.print(f"[green]✅ {APP_NAME}: {escape(message)}[/green]")

    def notify_info(self, message: str):
        self.console.print(f"[dim]{APP_NAME}: {escape(message)}[/dim]")

    # ------- [Checks] -------

    def check_config(self, option: Optional[CommandOption] = None):
        """Raise ConfigError for settings that make every request pointless"""
        option = option or self.option
        if not self.settings.api_key:
            raise ConfigError("You should input your API Key")
        if option.use_ref and not option.refs:
            raise ConfigError("no reference tags")

    # ------- [Pipeline] -------

    async def classify_input(
        self,
        text: str,
        document: DocumentAdapter,
        token: CancellationToken,
        option: Optional[CommandOption] = None,
    ) -> AggregatedOutput:
        """Classify one input item. Creates placeholder notes but does not insert output."""
        option = option or self.option
        if not text or not text.strip():
            raise InputError("no input data")

        request = ClassificationRequest.from_option(option, text)
        llm = self._get_llm_client()
        raw = await llm.call_api(
            request.system_role,
            request.user_prompt,
            self.settings.api_key,
            token,
            model=option.model,
            max_tokens=option.max_tokens,
            max_retries=self.settings.max_retries,
        )
        # A reply that arrives after an abort is discarded
        token.raise_if_cancelled()
        if not raw:
            raise APIResponseError("empty API response")

        return aggregate(
            raw,
            option,
            ensure_placeholder=document.ensure_placeholder_exists,
            threshold=self.settings.reliability_threshold,
        )

    async def classify_note(
        self,
        input_type: InputType,
        document: DocumentAdapter,
        token: CancellationToken,
        option: Optional[CommandOption] = None,
    ) -> Dict[str, int]:
        """Classify every input item of one note and write the results into it"""
        option = option or self.option
        stats = {'inputs': 0, 'classified': 0, 'skipped': 0, 'failed': 0}

        inputs = document.get_input_text(input_type)
        if not inputs:
            self.notify_error(f"no input data ({document.path})")
            return stats
        stats['inputs'] = len(inputs)

        for text in inputs:
            token.raise_if_cancelled()
            try:
                output = await self.classify_input(text, document, token, option)
                if output.is_empty:
                    stats['skipped'] += 1
                    self.notify_info(f"nothing above reliability threshold ({document.path})")
                    continue
                document.insert_result(option.out_location, option.out_type, output, option, text)
            except ClassificationAborted:
                raise
            except ClassifierError as e:
                stats['failed'] += 1
                logger.warning(f"Classification failed for {document.path}: {e}")
                self.notify_error(f"{e} ({document.path})")
                if option.item_failure_policy == ItemFailurePolicy.ABORT:
                    break
                continue

            stats['classified'] += 1
            self.notify_success(f"classified to {output.text.strip()} ({document.path})")

        return stats

    async def classify_active(
        self,
        input_type: InputType,
        document: DocumentAdapter,
        token: CancellationToken,
        option: Optional[CommandOption] = None,
    ) -> Dict[str, int]:
        """Single-note command"""
        option = option or self.option
        self.check_config(option)
        return await self.classify_note(input_type, document, token, option)

    async def classify_vault(
        self,
        input_type: InputType,
        token: CancellationToken,
        option: Optional[CommandOption] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """
        Classify every indexable note of the vault, one at a time.

        Args:
            input_type: Which text of each note to classify
            token: Checked before every note; cancel it to stop early
            option: Command options (defaults to the settings)
            progress_callback: Optional callback(current, total, note_path)

        Returns:
            Dict with statistics: {total, classified, skipped, failed}
        """
        option = option or self.option
        self.check_config(option)
        if input_type == InputType.SELECTION:
            raise ConfigError("selection input is not available in whole-vault mode")
        if self.vault is None:
            raise ConfigError("Vault path not configured")

        notes = self.vault.iter_notes()
        stats = {'total': len(notes), 'classified': 0, 'skipped': 0, 'failed': 0}
        self.console.print(f"[cyan]Found {len(notes)} notes in {self.vault.vault_path}[/cyan]")

        for i, note_path in enumerate(notes, 1):
            token.raise_if_cancelled()
            relative_path = self.vault.relative(note_path)
            self.console.print(f"[dim][{i}/{len(notes)}][/dim] {escape(relative_path)}")
            if progress_callback:
                progress_callback(i, len(notes), relative_path)

            try:
                document = self.vault.open_note(note_path)
                note_stats = await self.classify_note(input_type, document, token, option)
            except ClassificationAborted:
                raise
            except ClassifierError as e:
                stats['failed'] += 1
                logger.warning(f"Skipping {relative_path}: {e}")
                self.notify_error(f"{e} ({relative_path})")
                continue

            if note_stats['classified']:
                stats['classified'] += 1
            elif note_stats['failed']:
                stats['failed'] += 1
            else:
                stats['skipped'] += 1

        self.console.print(f"\n[bold]Summary:[/bold]")
        self.console.print(f"  Total: {stats['total']}")
        self.console.print(f"  [green]Classified: {stats['classified']}[/green]")
        self.console.print(f"  [dim]Skipped: {stats['skipped']}[/dim]")
        if stats['failed'] > 0:
            self.console.print(f"  [red]Failed: {stats['failed']}[/red]")

        return stats
