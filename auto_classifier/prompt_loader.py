"""
Prompt templates for the Auto Classifier

Templates are plain strings with three placeholders:
    {{input}}      the text extracted from the note
    {{reference}}  the reference tags, comma-separated
    {{max_tags}}   the tag budget, or "unlimited" when 0
"""

import re
from typing import Sequence

DEFAULT_CHAT_ROLE = (
    "You are a JSON answer bot. When responding, provide only the JSON data without any "
    "additional formatting, explanation, or code block indicators. For example, instead of "
    "wrapping your response in ```json ... ```, just output the raw JSON content itself."
)

DEFAULT_PROMPT_TEMPLATE = """Classify this content:
\"\"\"
{{input}}
\"\"\"
Answer format is JSON Array [{reliability:0~1, output:selected_category}, ...].
Output {{max_tags}} tags, selected from the following list:

{{reference}}
"""

DEFAULT_PROMPT_TEMPLATE_WO_REF = """Classify this content:
\"\"\"
{{input}}
\"\"\"
Answer format is JSON Array [{reliability:0~1, output:selected_category}, ...].
Output {{max_tags}} tags.
Even if you are not sure, qualify the reliability and recommend a proper category.
"""


_PLACEHOLDER_RE = re.compile(r"\{\{(input|reference|max_tags)\}\}")


def render_prompt(template: str, text: str, references: Sequence[str], max_tags: int) -> str:
    """Fill the first occurrence of each placeholder in `template`.

    Substitution is a single pass over the template, so placeholders that
    appear inside the input text or the references are left untouched.
    """
    values = {
        "input": text,
        "reference": ','.join(references or []),
        "max_tags": 'unlimited' if max_tags == 0 else str(max_tags),
    }
    filled = set()

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in filled:
            return match.group(0)
        filled.add(name)
        return values[name]

    return _PLACEHOLDER_RE.sub(substitute, template)


def default_template(use_ref: bool) -> str:
    """Template matching the reference setting"""
    return DEFAULT_PROMPT_TEMPLATE if use_ref else DEFAULT_PROMPT_TEMPLATE_WO_REF


__all__ = [
    "DEFAULT_CHAT_ROLE",
    "DEFAULT_PROMPT_TEMPLATE",
    "DEFAULT_PROMPT_TEMPLATE_WO_REF",
    "render_prompt",
    "default_template",
]
