#!/usr/bin/env python3
"""
Metadata Manager for Obsidian Notes

Reads and edits key-value pairs in YAML frontmatter.
Creates the frontmatter section if it doesn't exist.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .errors import DocumentError

logger = logging.getLogger(__name__)


def frontmatter_line_count(content: str) -> int:
    """Number of lines taken by the frontmatter block, fences included (0 if none)"""
    if not content.startswith('---'):
        return 0

    lines = content.split('\n')
    for i, line in enumerate(lines[1:], 1):
        if line.strip() == '---':
            return i + 1
    return 0


def parse_frontmatter(content: str, strict: bool = False) -> Tuple[Dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    A header that is not a YAML mapping reads as empty, unless `strict` is set:
    then it raises DocumentError so the caller never rewrites it.

    Returns:
        tuple: (frontmatter_dict, content_without_frontmatter)
    """
    header_lines = frontmatter_line_count(content)
    if not header_lines:
        return {}, content

    lines = content.split('\n')
    frontmatter_lines = lines[1:header_lines - 1]
    content_text = '\n'.join(lines[header_lines:])

    try:
        frontmatter = yaml.safe_load('\n'.join(frontmatter_lines)) or {}
    except yaml.YAMLError as e:
        if strict:
            raise DocumentError(f"Could not parse frontmatter: {e}") from e
        logger.warning(f"Could not parse frontmatter: {e}")
        frontmatter = {}

    if not isinstance(frontmatter, dict):
        if strict:
            raise DocumentError("Frontmatter is not a key-value mapping")
        logger.warning(f"Ignoring frontmatter that is not a mapping: {frontmatter!r}")
        frontmatter = {}

    return frontmatter, content_text


def construct_file_content(frontmatter: Dict[str, Any], content_body: str) -> str:
    """Construct complete file content from frontmatter and body."""
    if not frontmatter:
        return content_body

    yaml_content = yaml.dump(frontmatter, default_flow_style=False, allow_unicode=True, sort_keys=False)
    return f"---\n{yaml_content}---\n{content_body}"


def merge_value(frontmatter: Dict[str, Any], key: str, value: Any, overwrite: bool = False) -> Dict[str, Any]:
    """Set `key` to `value`, or append to the existing value unless overwriting.

    An existing scalar becomes a two-element list; an existing list grows.
    """
    existing = frontmatter.get(key)
    if existing and not overwrite:
        if isinstance(existing, list):
            existing.append(value)
        else:
            frontmatter[key] = [existing, value]
    else:
        frontmatter[key] = value
    return frontmatter


def add_metadata(note_path: Path, key: str, values: List[Any], overwrite: bool = False) -> None:
    """Add values under `key` in the note's frontmatter.

    Args:
        note_path: Path to the markdown file
        key: Metadata key to add/update
        values: Values to store; a single value is stored as a scalar
        overwrite: Replace an existing value instead of appending

    Raises DocumentError when the existing frontmatter cannot be parsed,
    leaving the note untouched.
    """
    try:
        content = note_path.read_text(encoding='utf-8')
    except OSError as e:
        raise DocumentError(f"Cannot read {note_path.name}: {e}") from e

    try:
        frontmatter, content_body = parse_frontmatter(content, strict=True)
    except DocumentError as e:
        raise DocumentError(f"{note_path.name}: {e}") from e

    if overwrite:
        frontmatter[key] = values[0] if len(values) == 1 else list(values)
    else:
        for value in values:
            merge_value(frontmatter, key, value)
    new_content = construct_file_content(frontmatter, content_body)

    try:
        note_path.write_text(new_content, encoding='utf-8')
    except OSError as e:
        raise DocumentError(f"Cannot write {note_path.name}: {e}") from e
    logger.debug(f"Set {key}: {values} in {note_path.name}")
