"""
Pydantic models for the Auto Classifier
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .prompt_loader import DEFAULT_CHAT_ROLE, DEFAULT_PROMPT_TEMPLATE, default_template, render_prompt

# Entries at or below this reliability never reach the note
RELIABILITY_THRESHOLD = 0.2
OUTPUT_MARKER = " #auto-classifier "
OUTPUT_NAME_SUFFIX = "-GPT"


class InputType(str, Enum):
    """Where the text to classify comes from"""
    SELECTION = "selection"
    TITLE = "title"
    FRONTMATTER = "frontmatter"
    CONTENT = "content"
    CALLOUT = "callout"


class OutType(str, Enum):
    """How each classification is rendered"""
    TAG = "tag"
    WIKILINK = "wikilink"
    FRONTMATTER = "frontmatter"
    TITLE = "title"


class OutLocation(str, Enum):
    """Where tag/wikilink output is inserted"""
    CURSOR = "cursor"
    CONTENT_TOP = "content_top"
    CALLOUT_TOP = "callout_top"


class EntryPolicy(str, Enum):
    """What a malformed entry in the model reply does to its item"""
    SKIP = "skip"      # warn and keep the other entries
    ABORT = "abort"    # fail the whole item


class ItemFailurePolicy(str, Enum):
    """What a failed input item does to the rest of its note"""
    CONTINUE = "continue"
    ABORT = "abort"


class CommandOption(BaseModel):
    """Options for one classification command"""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    chat_role: str = DEFAULT_CHAT_ROLE
    use_ref: bool = True
    refs: List[str] = Field(default_factory=list)
    max_tags: int = 5
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 150
    out_type: OutType = OutType.TAG
    out_location: OutLocation = OutLocation.CURSOR
    overwrite: bool = False
    key: str = "tags"
    out_prefix: str = ""
    out_suffix: str = ""
    entry_policy: EntryPolicy = EntryPolicy.SKIP
    item_failure_policy: ItemFailurePolicy = ItemFailurePolicy.CONTINUE

    @field_validator('refs', mode='before')
    @classmethod
    def split_refs(cls, v):
        # Accept "a, b, c" from the settings file or the command line
        if v is None:
            return []
        if isinstance(v, str):
            return [ref.strip() for ref in v.split(',') if ref.strip()]
        return v

    @field_validator('max_tags')
    @classmethod
    def max_tags_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError('max_tags must be 0 (unlimited) or positive')
        return v


class AutoClassifierSettings(BaseModel):
    """Everything persisted in the settings file"""
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60
    max_retries: int = 5
    reliability_threshold: float = RELIABILITY_THRESHOLD
    vault_path: Optional[str] = None
    command_option: CommandOption = Field(default_factory=CommandOption)

    @field_validator('max_retries')
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError('max_retries must be at least 1')
        return v


class ClassificationRequest(BaseModel):
    """One input item ready to be sent to the model"""
    input: str
    system_role: str
    user_prompt: str

    @classmethod
    def from_option(cls, option: CommandOption, text: str) -> "ClassificationRequest":
        template = option.prompt_template
        # The stock template follows use_ref; custom templates are used as written
        if template == DEFAULT_PROMPT_TEMPLATE:
            template = default_template(option.use_ref)
        return cls(
            input=text,
            system_role=option.chat_role,
            user_prompt=render_prompt(template, text, option.refs, option.max_tags),
        )


class ClassificationEntry(BaseModel):
    """A single {reliability, output} pair from the model reply"""
    model_config = ConfigDict(extra='ignore')

    reliability: float = Field(strict=True)
    output: str = Field(strict=True, min_length=1)

    @model_validator(mode='before')
    @classmethod
    def must_be_object(cls, data):
        if not isinstance(data, dict):
            raise ValueError(f'entry must be an object, got {type(data).__name__}')
        return data


class AggregatedOutput(BaseModel):
    """Formatted classifications for one input item"""
    marker: str = OUTPUT_MARKER
    tokens: List[str] = Field(default_factory=list)
    names: List[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return self.marker + "".join(f"{token} " for token in self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.tokens
