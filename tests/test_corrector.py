"""Tests for the corrector module."""
import pytest

from subfix.config_loader import CorrectionSettings
from subfix.corrector import SubtitleCorrector, progress_percent
from subfix.exceptions import (
    ConfigurationError,
    EmptyInputError,
    InvalidResponse,
    RateLimitExhausted,
    RemoteError,
    SubFixError,
)
from subfix.models import EventKind, RunStatus
from subfix.subtitle_codec import SRTCodec
from subfix.transport import TransportResponse
from conftest import ScriptedTransport, UppercaseTransport, make_srt, ok, subtitle_lines

RATE_LIMITED = TransportResponse(429, None)


def make_corrector(settings, transport, sleeper, events=None):
    listener = events.append if events is not None else None
    return SubtitleCorrector(settings, transport, listener=listener, sleep=sleeper)


class TestProgressPercent:
    """Tests for progress_percent."""

    @pytest.mark.parametrize("done,total,expected", [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13), (0, 0, 0)])
    def test_rounding(self, done, total, expected):
        """Test whole-percent rounding half up."""
        assert progress_percent(done, total) == expected


class TestCorrectText:
    """Tests for SubtitleCorrector.correct_text."""

    def test_all_batches_corrected(self, settings, sleeper):
        """Test a full run keeps count, order and timing while replacing text."""
        transport = UppercaseTransport()
        corrector = make_corrector(settings, transport, sleeper)

        output = corrector.correct_text(make_srt(10), "reference")

        codec = SRTCodec()
        original = codec.decode(make_srt(10))
        corrected = codec.decode(output)
        assert len(corrected) == len(original)
        assert [(e.start_ms, e.end_ms) for e in corrected] == [(e.start_ms, e.end_ms) for e in original]
        assert [e.text for e in corrected] == [f"LINE {i}" for i in range(1, 11)]
        assert len(transport.prompts) == 3
        assert corrector.state.status is RunStatus.COMPLETED
        assert corrector.state.output == output

    def test_batches_use_local_indices(self, settings, sleeper):
        """Test that every prompt numbers its lines from 1."""
        transport = UppercaseTransport()
        make_corrector(settings, transport, sleeper).correct_text(make_srt(10), "reference")
        assert [[i for i, _ in subtitle_lines(p)] for p in transport.prompts] == [[1, 2, 3, 4], [1, 2, 3, 4], [1, 2]]
        assert subtitle_lines(transport.prompts[1])[0] == (1, "line 5")

    def test_partial_second_batch(self, settings, sleeper):
        """Test batch 2 answering only line 1 corrects entry 5 and keeps 6-8."""
        script = [
            ok("1>>>a\n2>>>b\n3>>>c\n4>>>d"),
            ok("1>>>fixed one"),
            ok("1>>>i\n2>>>j"),
        ]
        corrector = make_corrector(settings, ScriptedTransport(script), sleeper)

        output = corrector.correct_text(make_srt(10), "reference")

        texts = [e.text for e in SRTCodec().decode(output)]
        assert texts == ["a", "b", "c", "d", "fixed one", "line 6", "line 7", "line 8", "i", "j"]

    def test_unparseable_responses_keep_count(self, settings, sleeper):
        """Test garbage responses leave the file unchanged but complete."""
        script = [ok("Sorry, I can't do that.")] * 3
        corrector = make_corrector(settings, ScriptedTransport(script), sleeper)
        output = corrector.correct_text(make_srt(10), "reference")
        assert [e.text for e in SRTCodec().decode(output)] == [f"line {i}" for i in range(1, 11)]

    def test_cooldown_between_batches_only(self, settings, sleeper):
        """Test a cooldown after every batch except the last."""
        make_corrector(settings, UppercaseTransport(), sleeper).correct_text(make_srt(10), "reference")
        assert sleeper.calls == [4.0, 4.0]

    def test_single_batch_no_cooldown(self, settings, sleeper):
        """Test no cooldown for a one-batch run."""
        make_corrector(settings, UppercaseTransport(), sleeper).correct_text(make_srt(3), "reference")
        assert sleeper.calls == []

    def test_retry_then_success(self, settings, sleeper):
        """Test rate limits inside a batch are retried with growing backoff."""
        script = [RATE_LIMITED, RATE_LIMITED, ok("1>>>x")]
        events = []
        corrector = make_corrector(settings, ScriptedTransport(script), sleeper, events)

        corrector.correct_text(make_srt(2), "reference")

        assert sleeper.calls == [20.0, 30.0]
        retries = [e for e in events if e.kind is EventKind.RETRY]
        assert len(retries) == 2
        assert "429" in retries[0].message
        assert retries[0].message.startswith("Batch 1/1")

    def test_events_and_progress(self, settings, sleeper):
        """Test lifecycle events and monotonic progress."""
        events = []
        corrector = make_corrector(settings, UppercaseTransport(), sleeper, events)
        corrector.correct_text(make_srt(10), "reference", source_name="talk.srt")

        kinds = [e.kind for e in events]
        assert kinds[0] is EventKind.FILE_LOADED
        assert kinds[-1] is EventKind.COMPLETED
        assert kinds.count(EventKind.BATCH_STARTED) == 3
        progress = [e.progress for e in events if e.kind is EventKind.PROGRESS]
        assert progress == [33, 67, 100]
        assert "talk.srt" in events[0].message
        assert "Parsed successfully: 10 subtitle entries" in events[1].message
        assert len(corrector.state.log) == len(events)

    def test_batch_failure_aborts_run(self, settings, sleeper):
        """Test a failed batch discards results and stops further batches."""
        settings = CorrectionSettings(api_key="k", batch_size=4, max_attempts=2)
        error = TransportResponse(500, {"error": {"message": "internal"}})
        transport = ScriptedTransport([ok("1>>>a"), error, error])
        events = []
        corrector = make_corrector(settings, transport, sleeper, events)

        with pytest.raises(RemoteError):
            corrector.correct_text(make_srt(10), "reference")

        assert len(transport.prompts) == 3  # batch 3 never sent
        state = corrector.state
        assert state.status is RunStatus.FAILED
        assert state.processed == []
        assert state.output is None
        assert "internal" in state.error
        assert events[-1].kind is EventKind.FAILED

    def test_rate_limit_exhausted_propagates(self, sleeper):
        """Test RateLimitExhausted surfaces from the run."""
        settings = CorrectionSettings(api_key="k", max_attempts=2)
        corrector = make_corrector(settings, ScriptedTransport([RATE_LIMITED] * 2), sleeper)
        with pytest.raises(RateLimitExhausted):
            corrector.correct_text(make_srt(2), "reference")

    def test_empty_input_before_network(self, settings, sleeper):
        """Test zero decodable entries fail with EmptyInputError and no request."""
        transport = ScriptedTransport([])
        corrector = make_corrector(settings, transport, sleeper)
        with pytest.raises(EmptyInputError):
            corrector.correct_text("nothing to see here", "reference")
        assert transport.prompts == []
        assert corrector.state.status is RunStatus.FAILED

    @pytest.mark.parametrize("api_key,subtitles,reference", [
        (None, make_srt(2), "reference"),
        ("k", None, "reference"),
        ("k", make_srt(2), ""),
        ("k", make_srt(2), "   "),
    ])
    def test_preconditions(self, api_key, subtitles, reference, sleeper):
        """Test missing credential or inputs fail fast without network activity."""
        transport = ScriptedTransport([])
        corrector = make_corrector(CorrectionSettings(api_key=api_key), transport, sleeper)
        with pytest.raises(ConfigurationError):
            corrector.correct_text(subtitles, reference)
        assert transport.prompts == []

    def test_unexpected_error_wrapped(self, settings, sleeper):
        """Test unexpected exceptions become SubFixError."""
        class BrokenCodec(SRTCodec):
            def encode(self, entries):
                raise RuntimeError("disk on fire")

        corrector = SubtitleCorrector(settings, UppercaseTransport(), codec=BrokenCodec(), sleep=sleeper)
        with pytest.raises(SubFixError) as excinfo:
            corrector.correct_text(make_srt(2), "reference")
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert corrector.state.status is RunStatus.FAILED

    def test_multi_line_cues_survive(self, settings, sleeper):
        """Test a two-line cue is sent as one prompt line and comes back with both lines."""
        srt = "1\n00:00:01,000 --> 00:00:02,000\nfirst half\nsecond half\n\n2\n00:00:03,000 --> 00:00:04,000\nline 2\n"
        transport = UppercaseTransport()
        output = make_corrector(settings, transport, sleeper).correct_text(srt, "reference")

        assert subtitle_lines(transport.prompts[0]) == [(1, "first half<br>second half"), (2, "line 2")]
        assert [e.text for e in SRTCodec().decode(output)] == ["FIRST HALF\nSECOND HALF", "LINE 2"]

    def test_malformed_success_reported_as_invalid_response(self, sleeper):
        """Test a 200 with an unexpected body shape fails the run with InvalidResponse."""
        settings = CorrectionSettings(api_key="k", max_attempts=2)
        malformed = TransportResponse(200, {"candidates": ["oops"]})
        corrector = make_corrector(settings, ScriptedTransport([malformed, malformed]), sleeper)
        with pytest.raises(InvalidResponse):
            corrector.correct_text(make_srt(2), "reference")
        assert corrector.state.status is RunStatus.FAILED

    def test_state_reset_between_runs(self, settings, sleeper):
        """Test a second run starts from a fresh state."""
        corrector = make_corrector(settings, UppercaseTransport(), sleeper)
        corrector.correct_text(make_srt(2), "reference")
        corrector.correct_text(make_srt(3), "reference")
        assert corrector.state.total_entries == 3
        assert len(corrector.state.processed) == 3


class TestCorrectFile:
    """Tests for SubtitleCorrector.correct_file."""

    def test_writes_prefixed_output(self, tmp_path, settings, sleeper):
        """Test the output lands at <output_dir>/fixed_<name>."""
        srt = tmp_path / "talk.srt"
        srt.write_text(make_srt(3), encoding="utf-8")
        ref = tmp_path / "talk.txt"
        ref.write_text("reference", encoding="utf-8")
        out_dir = tmp_path / "out"

        path = make_corrector(settings, UppercaseTransport(), sleeper).correct_file(str(srt), str(ref), str(out_dir))

        assert path == str(out_dir / "fixed_talk.srt")
        texts = [e.text for e in SRTCodec().decode((out_dir / "fixed_talk.srt").read_text(encoding="utf-8"))]
        assert texts == ["LINE 1", "LINE 2", "LINE 3"]

    def test_missing_input_file(self, tmp_path, settings, sleeper):
        """Test a missing subtitle file is a configuration error."""
        ref = tmp_path / "ref.txt"
        ref.write_text("reference", encoding="utf-8")
        corrector = make_corrector(settings, ScriptedTransport([]), sleeper)
        with pytest.raises(ConfigurationError):
            corrector.correct_file(str(tmp_path / "missing.srt"), str(ref), str(tmp_path))

    def test_no_output_on_failure(self, tmp_path, sleeper):
        """Test that a failed run writes no artifact."""
        settings = CorrectionSettings(api_key="k", max_attempts=1)
        srt = tmp_path / "a.srt"
        srt.write_text(make_srt(2), encoding="utf-8")
        ref = tmp_path / "a.txt"
        ref.write_text("reference", encoding="utf-8")
        corrector = make_corrector(settings, ScriptedTransport([TransportResponse(500, None)]), sleeper)

        with pytest.raises(RemoteError):
            corrector.correct_file(str(srt), str(ref), str(tmp_path / "out"))
        assert not (tmp_path / "out" / "fixed_a.srt").exists()
