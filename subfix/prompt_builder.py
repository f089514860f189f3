"""Builds the correction prompt sent to the remote model for one batch."""

import re
from typing import Optional

from .models import Batch

DEFAULT_SEPARATOR = ">>>"

# Marks a line break inside one cue, so every entry stays on a single prompt line
LINE_BREAK_TOKEN = "<br>"
_LINE_BREAK_PATTERN = re.compile(r"\s*<br\s*/?>\s*", re.IGNORECASE)

DEFAULT_CORRECTION_RULES = """\
1. Punctuation uses spacing mode:
   - Commas must be replaced with a space. Never delete them outright so that words run together.
   - Full stops and exclamation marks inside a line become a space; at the end of a line they may be removed.
   - Question marks must be kept when the reference transcript phrases the line as a question.
2. Remove filler words and meaningless spoken particles.
3. Otherwise keep the original spoken wording of the subtitle as far as possible.
4. Fix typos: only correct homophone errors.
5. Output must be written in Simplified Chinese script."""


def build_reference_excerpt(reference_text: str, max_chars: Optional[int]) -> str:
    """Returns the first `max_chars` characters of the reference, marked with '...' when cut.

    A `max_chars` of None or 0 keeps the whole reference.
    """
    if not max_chars or len(reference_text) <= max_chars:
        return reference_text
    return reference_text[:max_chars] + "..."


def encode_line_breaks(text: str) -> str:
    """Folds a multi-line cue onto one prompt line, marking each break with LINE_BREAK_TOKEN."""
    lines = [line.strip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    return LINE_BREAK_TOKEN.join(line for line in lines if line)


def decode_line_breaks(text: str) -> str:
    """Turns LINE_BREAK_TOKEN markers in model output back into line breaks."""
    return "\n".join(part.strip() for part in _LINE_BREAK_PATTERN.split(text) if part.strip())


def render_batch(batch: Batch, separator: str = DEFAULT_SEPARATOR) -> str:
    """Renders the batch as `<local-index><separator><text>` lines in local-index order, one line per entry."""
    return "\n".join(f"{index}{separator}{encode_line_breaks(entry.text)}" for index, entry in batch.indexed())


def build_prompt(
    batch: Batch,
    reference_text: str,
    correction_rules: str = DEFAULT_CORRECTION_RULES,
    separator: str = DEFAULT_SEPARATOR,
    reference_excerpt_chars: Optional[int] = 3000,
) -> str:
    """
    Builds the instruction text for correcting one batch against the reference.

    The output contract (one line per entry, `<index><separator><text>` format,
    nothing else) is always embedded, regardless of the configured rule text.

    Args:
        batch: The batch of entries to correct.
        reference_text: The trusted reference transcript.
        correction_rules: Enumerated rule text describing how errors are corrected.
        separator: Token between the local index and the text.
        reference_excerpt_chars: Prefix length of the reference to include (None/0 = all).

    Returns:
        The full prompt text. Deterministic for the same inputs.
    """
    excerpt = build_reference_excerpt(reference_text, reference_excerpt_chars)
    line_count = len(batch)
    return f"""You are a professional subtitle proofreader.
Task: use the [Reference Transcript] to detect and fix errors in the [Subtitles To Correct].

[Correction Rules (follow strictly)]:
{correction_rules.strip()}

[Output Requirements]:
1. You must output exactly {line_count} lines, one per subtitle, none omitted and none added.
2. Format of every line: index{separator}corrected text
3. {LINE_BREAK_TOKEN} marks a line break inside one subtitle. Keep it where the break belongs and never split a subtitle over several lines.
4. Do not output explanations or any other content.

[Reference Transcript Excerpt]:
{excerpt}

[Subtitles To Correct]:
{render_batch(batch, separator)}
"""
