"""
The document contract the classifier works against.

The classifier never edits notes directly: it asks a DocumentAdapter for
input text, hands it back the aggregated output, and asks it to create
placeholder notes. vault.NoteDocument is the on-disk implementation;
tests use an in-memory one.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import AggregatedOutput, CommandOption, InputType, OutLocation, OutType


class DocumentAdapter(ABC):
    """One note plus the store it lives in"""

    @property
    @abstractmethod
    def path(self) -> str:
        """Vault-relative path, used in notices"""

    @abstractmethod
    def get_input_text(self, kind: InputType) -> Optional[List[str]]:
        """Text items to classify, or None if the note has nothing of that kind"""

    @abstractmethod
    def insert_result(
        self,
        location: OutLocation,
        out_type: OutType,
        output: AggregatedOutput,
        option: CommandOption,
        source_input: str,
    ) -> None:
        """Write `output` into the note.

        `source_input` is the item that produced it, needed to find the
        callout for OutLocation.CALLOUT_TOP.
        """

    @abstractmethod
    def ensure_placeholder_exists(self, name: str) -> bool:
        """Create note `name` if missing. Returns True when it was created."""
