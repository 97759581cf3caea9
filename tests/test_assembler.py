"""
Tests for the per-bot transcript assembler.

Run with:
    pytest tests/test_assembler.py -v
"""

from meeting_bridge.transcript.assembler import AssemblerAction, TranscriptAssembler


class TestFinalSegments:
    def test_identical_finals_only_append_once(self):
        asm = TranscriptAssembler()
        actions = [asm.ingest("bot-1", "Alice", "we should ship friday", False, now_ms=i) for i in range(5)]

        assert actions[0] is AssemblerAction.APPENDED
        assert all(a is AssemblerAction.UNCHANGED for a in actions[1:])
        assert len(asm.segments("bot-1")) == 1

    def test_same_text_from_other_speaker_appends(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "sounds good", False, now_ms=1)
        action = asm.ingest("bot-1", "Bob", "sounds good", False, now_ms=2)

        assert action is AssemblerAction.APPENDED
        assert [s.speaker for s in asm.segments("bot-1")] == ["Alice", "Bob"]

    def test_final_converts_trailing_partial_in_place(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "we should", True, now_ms=1)
        action = asm.ingest("bot-1", "Alice", "we should ship", False, now_ms=2)

        segments = asm.segments("bot-1")
        assert action is AssemblerAction.FINALIZED
        assert len(segments) == 1
        assert segments[0].text == "we should ship"
        assert segments[0].is_partial is False
        assert segments[0].timestamp_ms == 2

    def test_final_after_other_speakers_partial_appends(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "we should", True, now_ms=1)
        action = asm.ingest("bot-1", "Bob", "hold on", False, now_ms=2)

        segments = asm.segments("bot-1")
        assert action is AssemblerAction.APPENDED
        assert [(s.speaker, s.is_partial) for s in segments] == [("Alice", True), ("Bob", False)]


class TestPartialSegments:
    def test_partials_from_one_speaker_stay_one_entry(self):
        asm = TranscriptAssembler()
        texts = ["so", "so the", "so the plan", "so the plan is"]
        actions = [asm.ingest("bot-1", "Alice", t, True, now_ms=i) for i, t in enumerate(texts)]

        assert actions[0] is AssemblerAction.APPENDED
        assert all(a is AssemblerAction.REPLACED for a in actions[1:])
        segments = asm.segments("bot-1")
        assert len(segments) == 1
        assert segments[0].text == "so the plan is"
        assert segments[0].timestamp_ms == 3

    def test_identical_partial_is_noop(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "so the", True, now_ms=1)
        action = asm.ingest("bot-1", "Alice", "so the", True, now_ms=9)

        assert action is AssemblerAction.UNCHANGED
        assert asm.segments("bot-1")[0].timestamp_ms == 1

    def test_partial_after_final_starts_new_turn(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "first sentence", False, now_ms=1)
        action = asm.ingest("bot-1", "Alice", "second", True, now_ms=2)

        assert action is AssemblerAction.APPENDED
        assert len(asm.segments("bot-1")) == 2

    def test_speaker_change_never_merges(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "I think", True, now_ms=1)
        asm.ingest("bot-1", "Bob", "wait", True, now_ms=2)
        asm.ingest("bot-1", "Alice", "I think we", True, now_ms=3)

        assert [s.speaker for s in asm.segments("bot-1")] == ["Alice", "Bob", "Alice"]


class TestBufferBounds:
    def test_overflow_drops_oldest(self):
        asm = TranscriptAssembler(max_segments=3)
        for i in range(5):
            asm.ingest("bot-1", f"S{i}", f"line {i}", False, now_ms=i)

        assert [s.text for s in asm.segments("bot-1")] == ["line 2", "line 3", "line 4"]

    def test_window_returns_most_recent(self):
        asm = TranscriptAssembler()
        for i in range(6):
            asm.ingest("bot-1", f"S{i}", f"line {i}", False, now_ms=i)

        assert [s.text for s in asm.window("bot-1", 2)] == ["line 4", "line 5"]
        assert asm.window("bot-1", 0) == []
        assert asm.window("missing", 3) == []

    def test_buffers_are_per_bot(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "hello", False, now_ms=1)
        asm.ingest("bot-2", "Alice", "hello", False, now_ms=1)
        asm.ingest("bot-2", "Bob", "hi", False, now_ms=2)

        assert len(asm.segments("bot-1")) == 1
        assert len(asm.segments("bot-2")) == 2
        assert asm.segment_count() == 3

    def test_reset_and_drop(self):
        asm = TranscriptAssembler()
        asm.ingest("bot-1", "Alice", "hello", False, now_ms=1)
        asm.ingest("bot-2", "Bob", "hi", False, now_ms=1)

        asm.reset("bot-1")
        assert asm.segments("bot-1") == []
        asm.drop("bot-2")
        assert asm.segment_count() == 0
