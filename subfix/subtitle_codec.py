"""Handles decoding subtitle text into entries and encoding entries back (SRT)."""

import io
import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

import pysrt
from pysrt.srtexc import Error as SRTError

from .exceptions import SubtitleFormatError
from .models import SubtitleEntry

logger = logging.getLogger(__name__)

class SubtitleCodec(ABC):
    """Abstract base class for subtitle decoders/encoders."""

    @abstractmethod
    def decode(self, text: str) -> List[SubtitleEntry]:
        """
        Decodes subtitle file text into an ordered list of entries.

        Args:
            text: The whole subtitle file content.

        Returns:
            Entries in file order with 1-based positions.

        Raises:
            SubtitleFormatError: If the text cannot be decoded.
        """
        pass

    @abstractmethod
    def encode(self, entries: Sequence[SubtitleEntry]) -> str:
        """
        Encodes entries back into subtitle file text.

        Raises:
            SubtitleFormatError: If encoding fails.
        """
        pass


class SRTCodec(SubtitleCodec):
    """Reads and writes SubRip (.srt) text through pysrt."""

    def __init__(self, strict: bool = False):
        """
        Args:
            strict: Raise on malformed cues instead of skipping them.
        """
        self.error_handling = pysrt.SubRipFile.ERROR_RAISE if strict else pysrt.SubRipFile.ERROR_PASS

    def decode(self, text: str) -> List[SubtitleEntry]:
        try:
            subs = pysrt.from_string(text, error_handling=self.error_handling)
        except (SRTError, ValueError) as e:
            logger.error(f"Failed to parse SRT text: {e}", exc_info=True)
            raise SubtitleFormatError(f"Invalid SRT content: {e}") from e

        entries = [
            SubtitleEntry(
                position=position,
                start_ms=item.start.ordinal,
                end_ms=item.end.ordinal,
                text=item.text,
            )
            for position, item in enumerate(subs, start=1)
        ]
        logger.debug(f"Decoded {len(entries)} SRT cues")
        return entries

    def encode(self, entries: Sequence[SubtitleEntry]) -> str:
        subs = pysrt.SubRipFile()
        for entry in entries:
            subs.append(pysrt.SubRipItem(
                index=entry.position,
                start=pysrt.SubRipTime.from_ordinal(entry.start_ms),
                end=pysrt.SubRipTime.from_ordinal(entry.end_ms),
                text=entry.text,
            ))
        buffer = io.StringIO()
        try:
            subs.write_into(buffer)
        except (SRTError, ValueError) as e:
            logger.error(f"Failed to write SRT text: {e}", exc_info=True)
            raise SubtitleFormatError(f"Could not encode SRT content: {e}") from e
        return buffer.getvalue()
