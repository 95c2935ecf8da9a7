"""
Auto Classifier for Obsidian Notes

Classifies note text (selection, title, frontmatter, content or highlight
callouts) with a chat-completion model and writes the result back into the
note as tags, wikilinks, frontmatter values or a title suffix.
"""

from .models import (
    AggregatedOutput,
    AutoClassifierSettings,
    ClassificationEntry,
    CommandOption,
    EntryPolicy,
    InputType,
    ItemFailurePolicy,
    OutLocation,
    OutType,
)
from .cancellation import AbortController, CancellationToken
from .classifier import Classifier
from .llm_client import ChatGPTClient
from .vault import NoteDocument, Vault

__version__ = "0.1.0"

__all__ = [
    'AggregatedOutput',
    'AutoClassifierSettings',
    'ClassificationEntry',
    'CommandOption',
    'EntryPolicy',
    'InputType',
    'ItemFailurePolicy',
    'OutLocation',
    'OutType',
    'AbortController',
    'CancellationToken',
    'Classifier',
    'ChatGPTClient',
    'NoteDocument',
    'Vault',
]
