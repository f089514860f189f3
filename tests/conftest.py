"""Shared fixtures and fakes for SubFix tests."""
import pytest

from subfix.config_loader import CorrectionSettings
from subfix.models import SubtitleEntry
from subfix.transport import Transport, TransportResponse


def gemini_payload(text):
    """Build a successful generateContent payload carrying `text`."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def ok(text):
    return TransportResponse(200, gemini_payload(text))


def make_entries(count, start_position=1):
    return [
        SubtitleEntry(position=p, start_ms=p * 1000, end_ms=p * 1000 + 800, text=f"line {p}")
        for p in range(start_position, start_position + count)
    ]


def make_srt(count):
    """Build SRT text with `count` cues reading 'line N'."""
    blocks = []
    for p in range(1, count + 1):
        blocks.append(f"{p}\n00:00:{p:02d},000 --> 00:00:{p:02d},800\nline {p}\n")
    return "\n".join(blocks)


def subtitle_lines(prompt, separator=">>>"):
    """Return the `(index, text)` pairs rendered in a prompt's subtitle section."""
    section = prompt.split("[Subtitles To Correct]:", 1)[1]
    pairs = []
    for line in section.strip().splitlines():
        index, text = line.split(separator, 1)
        pairs.append((int(index), text))
    return pairs


class ScriptedTransport(Transport):
    """Returns (or raises) the scripted items in order; records every prompt."""

    def __init__(self, script):
        self.script = list(script)
        self.prompts = []
        self.closed = False

    def send(self, prompt):
        self.prompts.append(prompt)
        if not self.script:
            raise AssertionError("ScriptedTransport ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(prompt)
        return item

    def close(self):
        self.closed = True


class UppercaseTransport(Transport):
    """Answers every prompt by upper-casing each subtitle line it contains."""

    def __init__(self):
        self.prompts = []

    def send(self, prompt):
        self.prompts.append(prompt)
        lines = [f"{i}>>>{text.upper()}" for i, text in subtitle_lines(prompt)]
        return ok("\n".join(lines))


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def settings():
    return CorrectionSettings(api_key="test-key", batch_size=4)
