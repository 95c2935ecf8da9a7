#!/usr/bin/env python3
"""
Obsidian vault access for the Auto Classifier

Vault enumerates notes, creates placeholder notes and collects tags.
NoteDocument implements the DocumentAdapter contract over one Markdown file:

    input kinds:   selection | title | frontmatter | content | callout
    output places: cursor | content top | callout top | frontmatter key | title

Usage:
    vault = Vault(vault_path)
    note = vault.open_note("People/Ada.md", selection=Selection(10, 42))
    note.get_input_text(InputType.SELECTION)
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .document import DocumentAdapter
from .errors import DocumentError
from .metadata_manager import add_metadata, frontmatter_line_count, parse_frontmatter
from .models import AggregatedOutput, CommandOption, InputType, OutLocation, OutType

logger = logging.getLogger(__name__)

# Highlight callouts produced by the web clipper:
#   > [!quote] #new-highlight
#   > highlighted text
CALLOUT_RE = re.compile(r"> \[!\w+\] #new-highlight\n>([\s\S]+?)(?=\n>\n|\n*\Z)")
INLINE_TAG_RE = re.compile(r"(?<![\w#&])#([\w\-/]*[^\W\d][\w\-/]*)")
# Characters Windows refuses in file names
UNSAFE_NAME_RE = re.compile(r'["/\\<>:|?*]')


@dataclass(frozen=True)
class Selection:
    """Character offsets [start, end) of the editor selection"""
    start: int
    end: int

    @classmethod
    def parse(cls, text: str) -> "Selection":
        """Parse "START:END" """
        try:
            start, end = (int(part) for part in text.split(':', 1))
        except ValueError as e:
            raise ValueError(f"selection must look like START:END, got {text!r}") from e
        if start < 0 or end < start:
            raise ValueError(f"invalid selection range {text!r}")
        return cls(start, end)


def safe_note_name(name: str) -> str:
    return UNSAFE_NAME_RE.sub('', name).strip()


class Vault:
    """A folder of Markdown notes"""

    def __init__(self, vault_path: Union[str, Path]):
        self.vault_path = Path(vault_path)
        if not self.vault_path.is_dir():
            raise DocumentError(f"Vault not found: {vault_path}")

    def resolve(self, note_path: Union[str, Path]) -> Path:
        """Resolve relative note path to absolute path"""
        path = Path(note_path)
        if path.is_absolute():
            return path
        return self.vault_path / path

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.vault_path).as_posix()
        except ValueError:
            return str(path)

    def iter_notes(self) -> List[Path]:
        """All indexable notes: *.md outside hidden folders, sorted"""
        md_files = [
            f for f in self.vault_path.rglob("*.md")
            if not any(part.startswith('.') for part in f.relative_to(self.vault_path).parts)
        ]
        return sorted(md_files)

    def open_note(
        self,
        note_path: Union[str, Path],
        selection: Optional[Selection] = None,
        cursor: Optional[int] = None,
    ) -> "NoteDocument":
        full_path = self.resolve(note_path)
        if not full_path.is_file():
            raise DocumentError(f"Note not found: {note_path}")
        return NoteDocument(self, full_path, selection=selection, cursor=cursor)

    def ensure_placeholder_exists(self, name: str) -> bool:
        """Create `<name>.md` at the vault root if it doesn't exist"""
        title = safe_note_name(name)
        if not title:
            raise DocumentError(f"Cannot create a note named {name!r}")
        note_path = self.vault_path / f"{title}.md"
        if note_path.exists():
            return False
        try:
            note_path.write_text(f"# {title}\n\n", encoding='utf-8')
        except OSError as e:
            raise DocumentError(f"Cannot create note {title}: {e}") from e
        logger.info(f"Created note: {title}")
        return True

    def get_tags(self, filter_regex: Optional[str] = None) -> List[str]:
        """Every tag used in the vault (without '#'), optionally filtered by regex"""
        tags = set()
        for note in self.iter_notes():
            try:
                content = note.read_text(encoding='utf-8')
            except OSError as e:
                logger.warning(f"Skipping unreadable note {note}: {e}")
                continue
            frontmatter, body = parse_frontmatter(content)
            tags.update(_frontmatter_tags(frontmatter.get('tags')))
            tags.update(INLINE_TAG_RE.findall(body))

        result = sorted(tags)
        if filter_regex:
            pattern = re.compile(filter_regex)
            result = [tag for tag in result if pattern.search(tag)]
        return result


def _frontmatter_tags(value) -> Iterable[str]:
    if value is None or value == '':
        return []
    if isinstance(value, str):
        value = re.split(r'[,\s]+', value)
    elif not isinstance(value, list):
        # tags: 2024, tags: true
        value = [value]
    return [str(tag).lstrip('#') for tag in value if tag is not None and tag != '']


class NoteDocument(DocumentAdapter):
    """One note of a Vault, with optional editor state (selection and cursor)"""

    def __init__(self, vault: Vault, note_path: Path, selection: Optional[Selection] = None,
                 cursor: Optional[int] = None):
        self.vault = vault
        self.note_path = note_path
        self.selection = selection
        self.cursor = cursor

    @property
    def path(self) -> str:
        return self.vault.relative(self.note_path)

    def read(self) -> str:
        try:
            return self.note_path.read_text(encoding='utf-8')
        except OSError as e:
            raise DocumentError(f"Cannot read {self.path}: {e}") from e

    def write(self, content: str):
        try:
            self.note_path.write_text(content, encoding='utf-8')
        except OSError as e:
            raise DocumentError(f"Cannot write {self.path}: {e}") from e

    # ------- [Input] -------

    def get_input_text(self, kind: InputType) -> Optional[List[str]]:
        if kind == InputType.SELECTION:
            if self.selection is None:
                return None
            return [self.read()[self.selection.start:self.selection.end]]

        if kind == InputType.TITLE:
            return [self.note_path.stem]

        content = self.read()
        frontmatter, body = parse_frontmatter(content)

        if kind == InputType.FRONTMATTER:
            if not frontmatter:
                return None
            return [json.dumps(frontmatter, ensure_ascii=False, separators=(',', ':'), default=str)]

        if kind == InputType.CONTENT:
            return [body]

        if kind == InputType.CALLOUT:
            callouts = CALLOUT_RE.findall(body)
            return callouts or None

        raise ValueError(f"Unknown input type: {kind}")

    # ------- [Output] -------

    def insert_result(
        self,
        location: OutLocation,
        out_type: OutType,
        output: AggregatedOutput,
        option: CommandOption,
        source_input: str,
    ) -> None:
        if out_type in (OutType.TAG, OutType.WIKILINK):
            if location == OutLocation.CURSOR:
                self.insert_at_cursor(output.text, option.overwrite)
            elif location == OutLocation.CONTENT_TOP:
                self.insert_at_content_top(output.text)
            elif location == OutLocation.CALLOUT_TOP:
                self.insert_at_callout_top(source_input, output.text)
        elif out_type == OutType.FRONTMATTER:
            self.insert_at_frontmatter(option.key, output.tokens, option.overwrite)
        elif out_type == OutType.TITLE:
            self.insert_at_title(' '.join(output.tokens), option.overwrite)

    def insert_at_cursor(self, value: str, overwrite: bool = False):
        """Replace the selection when overwriting, else insert after it (or at the cursor)"""
        content = self.read()
        if self.selection is not None:
            start, end = self.selection.start, self.selection.end
            if not overwrite:
                start = end
        else:
            position = len(content) if self.cursor is None else self.cursor
            start = end = max(0, min(position, len(content)))

        self.write(content[:start] + value + content[end:])
        self.selection = None
        self.cursor = start + len(value)

    def insert_at_content_top(self, value: str):
        """Insert `value` on its own line right after the frontmatter"""
        content = self.read()
        top_line = frontmatter_line_count(content)
        lines = content.split('\n')
        offset = sum(len(line) + 1 for line in lines[:top_line])
        if offset > len(content):
            content += '\n'
            offset = len(content)
        self.write(content[:offset] + f"{value}\n" + content[offset:])

    def insert_at_callout_top(self, callout: str, tags: str):
        """Insert `tags` after the header of the highlight callout containing `callout`"""
        content = self.read()
        pattern = re.compile(
            r"(> \[!\w+\] #new-highlight)\s*>\s*(" + re.escape(callout) + r")(?=\s*>|\s*\Z)"
        )
        match = pattern.search(content)
        if not match:
            raise DocumentError(f"Callout not found in {self.path}")
        insertion_index = match.end(1)
        self.write(content[:insertion_index] + tags + content[insertion_index:])

    def insert_at_frontmatter(self, key: str, values: List[str], overwrite: bool = False):
        add_metadata(self.note_path, key, values, overwrite=overwrite)

    def insert_at_title(self, value: str, overwrite: bool = False):
        """Rename the note to `value`, or append `value` to its name"""
        new_name = value if overwrite else f"{self.note_path.stem} {value}"
        new_name = safe_note_name(new_name)
        if not new_name:
            raise DocumentError(f"Cannot rename {self.path}: empty title")

        new_path = self.note_path.with_name(new_name + self.note_path.suffix)
        if new_path == self.note_path:
            return
        if new_path.exists():
            raise DocumentError(f"Cannot rename {self.path}: {new_path.name} already exists")
        try:
            self.note_path.rename(new_path)
        except OSError as e:
            raise DocumentError(f"Cannot rename {self.path}: {e}") from e
        logger.info(f"Renamed {self.path} -> {new_path.name}")
        self.note_path = new_path

    def ensure_placeholder_exists(self, name: str) -> bool:
        return self.vault.ensure_placeholder_exists(name)
