"""
Pytest configuration and fixtures for Auto Classifier tests
"""
import json
import pytest
import tempfile
import shutil
from pathlib import Path

from auto_classifier.document import DocumentAdapter
from auto_classifier.llm_client import ChatGPTClient
from auto_classifier.models import AutoClassifierSettings, CommandOption


def chat_reply(content):
    """Body of a successful /chat/completions response"""
    return {
        "model": "gpt-3.5-turbo",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 42},
    }


def classification_reply(*pairs):
    """Body whose content is a JSON array of {reliability, output} pairs"""
    return chat_reply(json.dumps([{"reliability": r, "output": o} for r, o in pairs]))


class FakeResponse:
    """Stand-in for aiohttp.ClientResponse (used as an async context manager)"""

    def __init__(self, status=200, body=None, reason="OK", headers=None):
        self.status = status
        self.body = body
        self.reason = reason
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self):
        if isinstance(self.body, (dict, list)):
            return self.body
        raise ValueError("not JSON")

    async def text(self):
        return self.body if isinstance(self.body, str) else json.dumps(self.body)


class FakeSession:
    """Replays queued responses; the last one repeats once the queue is drained"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def post(self, url, json=None, headers=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    """Replaces the backoff sleep; records the requested delays"""

    def __init__(self, on_sleep=None):
        self.delays = []
        self.on_sleep = on_sleep

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.on_sleep:
            self.on_sleep(delay)


class FakeDocument(DocumentAdapter):
    """In-memory note: fixed inputs per kind, records inserts and placeholders"""

    def __init__(self, inputs=None, path="fake.md", fail_insert=None):
        self.inputs = inputs or {}
        self._path = path
        self.fail_insert = fail_insert
        self.inserted = []
        self.placeholders = []

    @property
    def path(self):
        return self._path

    def get_input_text(self, kind):
        return self.inputs.get(kind)

    def insert_result(self, location, out_type, output, option, source_input):
        if self.fail_insert:
            raise self.fail_insert
        self.inserted.append({
            "location": location,
            "out_type": out_type,
            "text": output.text,
            "tokens": list(output.tokens),
            "source": source_input,
        })

    def ensure_placeholder_exists(self, name):
        created = name not in self.placeholders
        self.placeholders.append(name)
        return created


@pytest.fixture
def temp_vault():
    """Create a temporary vault directory for testing"""
    temp_dir = tempfile.mkdtemp(prefix="test_vault_")
    vault_path = Path(temp_dir)

    (vault_path / "Inbox").mkdir()
    (vault_path / "Inbox" / "Black holes.md").write_text("""---
title: Black holes
tags: [space, physics]
---
# Black holes

Regions of spacetime where gravity is so strong nothing escapes. #astronomy
""", encoding="utf-8")

    (vault_path / "Highlights.md").write_text("""---
source: https://example.com/ocean
---
Notes from an article.

> [!quote] #new-highlight
> Dolphins sleep with one eye open.
>
> [!quote] #new-highlight
> Octopuses have three hearts.
""", encoding="utf-8")

    (vault_path / "plain.md").write_text("some text", encoding="utf-8")

    # Hidden folders are never indexed
    (vault_path / ".obsidian").mkdir()
    (vault_path / ".obsidian" / "workspace.md").write_text("#hidden", encoding="utf-8")

    yield vault_path

    # Cleanup
    shutil.rmtree(temp_dir)


SETTINGS_ENV_VARS = [
    "AUTO_CLASSIFIER_CONFIG", "OPENAI_API_KEY", "API_KEY", "BASE_URL", "TIMEOUT",
    "MAX_RETRIES", "RELIABILITY_THRESHOLD", "VAULT_PATH",
] + [f"COMMAND_OPTION_{name.upper()}" for name in CommandOption.model_fields]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove settings overrides from the environment, restoring them afterwards

    Also undoes whatever load_dotenv() puts into os.environ during the test.
    """
    for name in SETTINGS_ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def command_option():
    return CommandOption(refs=["Animals", "Plants", "Minerals"])


@pytest.fixture
def settings(command_option, temp_vault):
    return AutoClassifierSettings(
        api_key="sk-test",
        base_url="http://llm.test/v1",
        vault_path=str(temp_vault),
        command_option=command_option,
    )


@pytest.fixture
def fake_session():
    return FakeSession(FakeResponse(body=classification_reply((0.9, "Animals"))))


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def llm_client(fake_session, recording_sleep):
    return ChatGPTClient(base_url="http://llm.test/v1", session=fake_session, sleep=recording_sleep)
