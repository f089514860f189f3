"""Merges the model's indexed-line response back onto the original batch."""

import logging

from .models import Batch, CorrectionMap
from .prompt_builder import DEFAULT_SEPARATOR, decode_line_breaks

logger = logging.getLogger(__name__)


def parse_local_index(raw_index: str):
    """Returns the index as an int when it is plain ASCII digits without a leading zero, else None."""
    if not raw_index.isascii() or not raw_index.isdigit() or raw_index.startswith("0"):
        return None
    return int(raw_index)


def parse_response(response_text: str, batch_size: int, separator: str = DEFAULT_SEPARATOR) -> CorrectionMap:
    """
    Parses `<index><separator><text>` lines into a CorrectionMap.

    The response is split on '\\n' only (a trailing '\\r' is dropped), so other
    Unicode line separators stay part of the text. Lines without the separator,
    with an index that is not a plain decimal number ("0003", "1_0" and
    non-ASCII digits are rejected), or with an index outside 1..batch_size are
    skipped. Only the first separator splits the line; later occurrences stay
    part of the text. A repeated index overwrites the earlier one.
    """
    corrections = CorrectionMap(batch_size)
    for line in response_text.split("\n"):
        line = line.rstrip("\r")
        if separator not in line:
            continue
        raw_index, text = line.split(separator, 1)
        local_index = parse_local_index(raw_index.strip())
        if local_index is None:
            logger.debug(f"Ignoring response line with non-numeric index: '{line[:50]}'")
            continue
        if not corrections.accepts(local_index):
            logger.debug(f"Ignoring response line with out-of-range index {local_index} (batch size {batch_size})")
            continue
        corrections.set(local_index, decode_line_breaks(text.strip()))
    return corrections


def reconcile(batch: Batch, response_text: str, separator: str = DEFAULT_SEPARATOR) -> Batch:
    """
    Returns a new batch with each entry's text replaced by its correction.

    Entries without a correction, or whose correction is empty, keep their
    original text, so the result always has the same length and order as `batch`.
    """
    corrections = parse_response(response_text, len(batch), separator)
    merged = []
    missing = 0
    for local_index, entry in batch.indexed():
        corrected = corrections.get(local_index)
        if corrected:
            merged.append(entry.with_text(corrected))
        else:
            merged.append(entry)
            missing += 1

    if missing:
        logger.warning(f"Batch {batch.number}: {missing}/{len(batch)} line(s) missing from the response, kept original text.")
    return batch.with_entries(merged)
