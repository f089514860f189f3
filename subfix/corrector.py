"""Orchestrates the batch subtitle correction pipeline."""

import logging
import math
import os
import time
from typing import Callable, List, Optional

from .config_loader import CorrectionSettings
from .exceptions import ConfigurationError, EmptyInputError, SubFixError
from .invoker import AttemptResult, ResilientInvoker
from .models import (
    Batch,
    BatchPhase,
    EventKind,
    PipelineEvent,
    RunState,
    RunStatus,
    SubtitleEntry,
    partition_batches,
)
from .prompt_builder import build_prompt
from .reconciler import reconcile
from .subtitle_codec import SRTCodec, SubtitleCodec
from .transport import Transport
from .utils import build_output_path, read_text_file, write_text_file

logger = logging.getLogger(__name__)

EventListener = Callable[[PipelineEvent], None]


def progress_percent(completed: int, total: int) -> int:
    """Completed share of `total` as a whole percentage, rounded half up."""
    if total <= 0:
        return 0
    return int(math.floor(completed * 100 / total + 0.5))


class SubtitleCorrector:
    """
    Corrects a subtitle sequence against a reference transcript, batch by batch.

    Batches run strictly in order: prompt, invoke (with retries), reconcile,
    append, then cool down before the next one. The first unrecovered failure
    aborts the run and discards everything processed so far.
    """

    def __init__(
        self,
        settings: CorrectionSettings,
        transport: Transport,
        codec: Optional[SubtitleCodec] = None,
        listener: Optional[EventListener] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the SubtitleCorrector.

        Args:
            settings: Batch size, retry policy, prompt and cooldown settings.
            transport: Collaborator that sends a prompt to the remote model.
            codec: Subtitle decoder/encoder. Defaults to SRTCodec.
            listener: Optional callback receiving every PipelineEvent.
            sleep: Function used for cooldown and backoff waits.
        """
        self.settings = settings
        self.transport = transport
        self.codec = codec or SRTCodec()
        self.listener = listener
        self.sleep = sleep
        self.invoker = ResilientInvoker(
            transport,
            policy=settings.retry_policy(),
            sleep=sleep,
            on_retry=self._on_retry,
        )
        self.state = RunState()

    # --- events -------------------------------------------------------------

    def _emit(self, kind: EventKind, message: str, level: int = logging.INFO) -> PipelineEvent:
        event = PipelineEvent(kind=kind, message=message, progress=self.state.progress)
        self.state.log.append(event.format_line())
        logger.log(level, message)
        if self.listener:
            self.listener(event)
        return event

    def _on_retry(self, attempt: int, result: AttemptResult, delay: float) -> None:
        self._emit(
            EventKind.RETRY,
            f"Batch {self.state.current_batch}/{self.state.total_batches}: {ResilientInvoker.describe_retry(result, delay)}",
            level=logging.WARNING,
        )

    # --- pipeline -----------------------------------------------------------

    def _validate(self, subtitle_text: Optional[str], reference_text: Optional[str]) -> None:
        if not self.settings.api_key:
            raise ConfigurationError("An API key is required (use --api-key, 'api_key' in config, or GEMINI_API_KEY).")
        if subtitle_text is None:
            raise ConfigurationError("No subtitle input was provided.")
        if not reference_text or not reference_text.strip():
            raise ConfigurationError("A reference transcript is required.")

    def _process_batch(self, batch: Batch, reference_text: str) -> Batch:
        state = self.state
        state.current_batch = batch.number
        self._emit(EventKind.BATCH_STARTED, f"Processing batch {batch.number} / {state.total_batches}...")

        state.phase = BatchPhase.BUILDING
        prompt = build_prompt(
            batch,
            reference_text,
            correction_rules=self.settings.correction_rules,
            separator=self.settings.separator,
            reference_excerpt_chars=self.settings.reference_excerpt_chars,
        )

        state.phase = BatchPhase.INVOKING
        response_text = self.invoker.invoke(prompt)

        state.phase = BatchPhase.RECONCILING
        return reconcile(batch, response_text, self.settings.separator)

    def correct_text(self, subtitle_text: Optional[str], reference_text: Optional[str], source_name: str = "subtitles") -> str:
        """
        Runs the full correction pipeline on subtitle file text.

        Args:
            subtitle_text: Content of the subtitle file.
            reference_text: Trusted reference transcript.
            source_name: Name shown in log events.

        Returns:
            The corrected subtitle file text. Entry count, order and timing
            match the input exactly.

        Raises:
            ConfigurationError: Missing credential or input; raised before any network call.
            EmptyInputError: The subtitle text holds no decodable entries.
            InvocationError: A batch failed after exhausting its retries.
            SubFixError: Any other failure, including unexpected ones (wrapped).
        """
        self.state = RunState(status=RunStatus.RUNNING)
        state = self.state
        start_time = time.time()
        try:
            self._validate(subtitle_text, reference_text)
            self._emit(EventKind.FILE_LOADED, f"Starting correction of '{source_name}' | model: {self.settings.model}")

            entries: List[SubtitleEntry] = self.codec.decode(subtitle_text)
            state.total_entries = len(entries)
            self._emit(EventKind.FILE_LOADED, f"Parsed successfully: {len(entries)} subtitle entries")
            if not entries:
                raise EmptyInputError(f"Subtitle file '{source_name}' contains no entries.")

            batches = partition_batches(entries, self.settings.batch_size)
            state.total_batches = len(batches)

            for batch in batches:
                corrected = self._process_batch(batch, reference_text)
                state.processed.extend(corrected.entries)
                state.completed_batches += 1
                state.phase = None
                state.progress = progress_percent(state.completed_batches, state.total_batches)
                self._emit(EventKind.PROGRESS, f"Batch {batch.number} / {state.total_batches} done ({state.progress}%)")

                if batch.number < state.total_batches and self.settings.batch_cooldown > 0:
                    self.sleep(self.settings.batch_cooldown)

            if len(state.processed) != len(entries):
                raise SubFixError(f"Entry count changed during correction: {len(entries)} -> {len(state.processed)}")

            state.output = self.codec.encode(state.processed)
            state.status = RunStatus.COMPLETED
            self._emit(EventKind.COMPLETED, f"All done! Corrected {len(entries)} entries in {time.time() - start_time:.2f} seconds.")
            return state.output

        except SubFixError as e:
            self._fail(e)
            raise
        except Exception as e:
            logger.critical(f"An unexpected error occurred during subtitle correction: {e}", exc_info=True)
            self._fail(e)
            raise SubFixError(f"An unexpected error occurred: {e}") from e

    def _fail(self, error: Exception) -> None:
        state = self.state
        state.status = RunStatus.FAILED
        state.phase = None
        state.processed = []
        state.output = None
        state.error = str(error)
        self._emit(EventKind.FAILED, f"Fatal error: {error}", level=logging.ERROR)

    def correct_file(self, subtitle_path: str, reference_path: str, output_dir: str) -> str:
        """
        Corrects a subtitle file and writes `<prefix><name>` into `output_dir`.

        Returns:
            The path of the written file.

        Raises:
            ConfigurationError: If an input file is missing.
            FileSystemError: If a file cannot be read or written.
            SubFixError: For any pipeline failure (see correct_text).
        """
        for label, path in (("Subtitle", subtitle_path), ("Reference", reference_path)):
            if not path or not os.path.isfile(path):
                raise ConfigurationError(f"{label} file not found or is not a file: {path}")

        subtitle_text = read_text_file(subtitle_path)
        reference_text = read_text_file(reference_path)
        output = self.correct_text(subtitle_text, reference_text, source_name=os.path.basename(subtitle_path))

        output_path = build_output_path(subtitle_path, output_dir, self.settings.output_prefix)
        write_text_file(output_path, output)
        logger.info(f"Corrected subtitles saved to: {output_path}")
        return output_path
