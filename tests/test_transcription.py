"""Tests for transcription and its scripted fallback."""

import asyncio

import pytest

from callqa.exceptions import BackendError
from callqa.schemas import TranscriptResult, TranscriptSegment
from callqa.transcription import (
    FALLBACK_SCRIPT,
    FallbackTranscriber,
    Transcriber,
    format_timestamp,
    parse_timestamp,
    render_transcript,
)

from fakes import FakeTranscriptionBackend


def run(coro):
    return asyncio.run(coro)


class TestTimestamps:
    def test_format(self):
        assert format_timestamp(0) == "00:00"
        assert format_timestamp(125.7) == "02:05"

    def test_parse(self):
        assert parse_timestamp("02:05") == 125

    def test_render(self):
        segments = [TranscriptSegment(speaker="Agent", text="Bom dia", timestamp="00:00")]
        assert render_transcript(segments) == "[Agent]: Bom dia"


class TestFallbackTranscriber:
    def test_idempotent(self):
        transcriber = Transcriber()
        first = run(transcriber.transcribe(None, 125))
        second = run(transcriber.transcribe(None, 125))
        assert first == second
        assert first.text

    def test_bounded_by_duration(self):
        result = FallbackTranscriber().transcribe(125)
        assert all(parse_timestamp(s.timestamp) < 125 for s in result.timestamps)
        assert result.timestamps[-1].timestamp == "01:55"

    def test_offset_equal_to_duration_is_excluded(self):
        result = FallbackTranscriber().transcribe(8)
        assert [s.timestamp for s in result.timestamps] == ["00:00"]

    def test_zero_duration_is_empty(self):
        result = FallbackTranscriber().transcribe(0)
        assert result.text == ""
        assert result.timestamps == []

    def test_long_call_gets_whole_script(self):
        result = FallbackTranscriber().transcribe(3600)
        assert len(result.timestamps) == len(FALLBACK_SCRIPT)


class TestTranscriber:
    def test_uses_backend(self):
        expected = TranscriptResult(
            text="[Speaker]: ola",
            timestamps=[TranscriptSegment(speaker="Speaker", text="ola", timestamp="00:01")],
        )
        backend = FakeTranscriptionBackend(result=expected)
        result = run(Transcriber(backend=backend).transcribe("audio/call_1.mp3", 60))
        assert result == expected
        assert backend.calls == ["audio/call_1.mp3"]

    def test_no_audio_skips_backend(self):
        backend = FakeTranscriptionBackend(result=TranscriptResult(text="x"))
        result = run(Transcriber(backend=backend).transcribe(None, 60))
        assert backend.calls == []
        assert result == FallbackTranscriber().transcribe(60)

    def test_backend_failure_falls_back(self):
        backend = FakeTranscriptionBackend(error=BackendError("Empty transcription"))
        result = run(Transcriber(backend=backend).transcribe("audio/a.mp3", 60))
        assert result == FallbackTranscriber().transcribe(60)

    def test_backend_timeout_falls_back(self):
        backend = FakeTranscriptionBackend(result=TranscriptResult(text="late"), delay=5)
        transcriber = Transcriber(backend=backend, timeout_seconds=0.05)
        result = run(transcriber.transcribe("audio/a.mp3", 60))
        assert result == FallbackTranscriber().transcribe(60)
