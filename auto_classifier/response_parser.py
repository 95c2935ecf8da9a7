"""
Parsing and aggregation of model replies.

The model is asked for a JSON array of {reliability, output} pairs. Replies
are untrusted: they are validated here before anything touches a note.

=== REPLY SCHEMA ===
[{"reliability": 0.9, "output": "Animals"}, {"reliability": 0.4, "output": "Pets"}]

=== AGGREGATED OUTPUT (Tag, no prefix/suffix) ===
" #auto-classifier #Animals-GPT #Pets-GPT "
"""

import json
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from .errors import MalformedJSON, ShapeError, UnexpectedShape
from .models import (
    OUTPUT_NAME_SUFFIX,
    RELIABILITY_THRESHOLD,
    AggregatedOutput,
    ClassificationEntry,
    CommandOption,
    EntryPolicy,
    OutType,
)

logger = logging.getLogger(__name__)


def format_output(name: str, out_type: OutType, prefix: str = '', suffix: str = '') -> str:
    """Render one classification name for the configured output type"""
    value = f"{prefix}{name}{suffix}"
    if out_type == OutType.TAG:
        return '#' + value.replace(' ', '_')
    if out_type == OutType.WIKILINK:
        return f"[[{value}]]"
    # Front matter and title placement is up to the document
    return value


def _strip_code_fence(raw: str) -> str:
    """Return the body of a ```json ... ``` block, or `raw` unchanged"""
    content = raw.strip()
    if '```json' in content:
        start = content.find('```json') + 7
        end = content.find('```', start)
        if end > start:
            return content[start:end].strip()
    elif content.startswith('```'):
        start = content.find('\n') + 1
        end = content.find('```', start)
        if start > 0 and end > start:
            return content[start:end].strip()
    return content


def parse_classification(raw: str, entry_policy: EntryPolicy = EntryPolicy.SKIP) -> List[ClassificationEntry]:
    """
    Validate a raw model reply.

    Raises:
        MalformedJSON: reply is not JSON
        UnexpectedShape: reply is JSON but not an array
        ShapeError: an entry is malformed and entry_policy is ABORT
    """
    try:
        parsed = json.loads(_strip_code_fence(raw))
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedJSON(f"output format error (output: {raw})", raw=raw) from e

    if not isinstance(parsed, list):
        raise UnexpectedShape(
            f"expected a JSON array, got {type(parsed).__name__} (output: {raw})", raw=raw
        )

    entries: List[ClassificationEntry] = []
    for index, item in enumerate(parsed):
        try:
            entries.append(ClassificationEntry.model_validate(item))
        except ValidationError as e:
            if entry_policy == EntryPolicy.ABORT:
                raise ShapeError(f"response format error in entry {index}: {item!r}", entry=item) from e
            logger.warning(f"Skipping malformed entry {index}: {item!r}")
    return entries


def aggregate(
    raw: str,
    option: CommandOption,
    ensure_placeholder: Optional[Callable[[str], object]] = None,
    threshold: float = RELIABILITY_THRESHOLD,
) -> AggregatedOutput:
    """
    Parse `raw` and fold the reliable entries into an AggregatedOutput.

    `ensure_placeholder` is called once per surviving entry with the
    `<output>-GPT` name, so a note exists for every tag or link written.
    """
    entries = parse_classification(raw, option.entry_policy)

    result = AggregatedOutput()
    for entry in entries:
        if entry.reliability <= threshold:
            logger.info(f"Dropping low reliability entry ({entry.reliability}): {entry.output}")
            continue
        name = entry.output + OUTPUT_NAME_SUFFIX
        token = format_output(name, option.out_type, option.out_prefix, option.out_suffix)
        if ensure_placeholder is not None:
            ensure_placeholder(name)
        result.names.append(name)
        result.tokens.append(token)
    return result


def parse_and_aggregate(
    raw: str,
    option: Optional[CommandOption] = None,
    ensure_placeholder: Optional[Callable[[str], object]] = None,
    reliability_threshold: float = RELIABILITY_THRESHOLD,
) -> AggregatedOutput:
    """aggregate() with default command options"""
    return aggregate(raw, option or CommandOption(), ensure_placeholder, reliability_threshold)


__all__ = [
    "format_output",
    "parse_classification",
    "aggregate",
    "parse_and_aggregate",
]
