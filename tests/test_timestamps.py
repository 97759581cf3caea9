"""Tests for word timestamp decoding and latency estimation."""

import pytest

from meeting_bridge.session_store import SessionRegistry
from meeting_bridge.transcript.timestamps import (
    EpochTimestamp,
    LatencyEstimator,
    RelativeTimestamp,
    UnknownTimestamp,
    decode_timestamp,
    latency_between,
    parse_status_time,
    to_epoch_ms,
)


class TestToEpochMs:
    def test_seconds_are_scaled(self):
        assert to_epoch_ms(1_700_000_000) == 1_700_000_000_000.0

    def test_milliseconds_pass_through(self):
        assert to_epoch_ms(1_700_000_000_123) == 1_700_000_000_123.0

    def test_numeric_string(self):
        assert to_epoch_ms("1700000000.5") == 1_700_000_000_500.0

    def test_iso_string_with_z(self):
        assert to_epoch_ms("2024-01-01T00:00:00Z") == 1_704_067_200_000.0

    @pytest.mark.parametrize("value", [None, True, "", "not a time", float("nan"), [1, 2]])
    def test_unusable_values(self, value):
        assert to_epoch_ms(value) is None

    @pytest.mark.parametrize("value", [10**400, -(10**400), float("inf"), "1e400"])
    def test_out_of_range_values(self, value):
        assert to_epoch_ms(value) is None


class TestDecodeTimestamp:
    def test_flat_number(self):
        assert decode_timestamp(1_700_000_000) == EpochTimestamp(1_700_000_000_000.0)

    @pytest.mark.parametrize("key", ["absolute", "epoch", "unix", "ts"])
    def test_absolute_keys(self, key):
        assert decode_timestamp({key: 1_700_000_000}) == EpochTimestamp(1_700_000_000_000.0)

    def test_absolute_beats_relative(self):
        decoded = decode_timestamp({"relative": 4.0, "absolute": "2024-01-01T00:00:00Z"})
        assert decoded == EpochTimestamp(1_704_067_200_000.0)

    def test_relative(self):
        assert decode_timestamp({"relative": 12.5}) == RelativeTimestamp(12.5)

    @pytest.mark.parametrize("raw", [None, {}, {"relative": "soon"}, {"relative": True}, "garbage"])
    def test_unknown(self, raw):
        assert isinstance(decode_timestamp(raw), UnknownTimestamp)

    @pytest.mark.parametrize("raw", [10**400, {"relative": 10**400}, {"relative": float("nan")}, {"absolute": 10**400}])
    def test_out_of_range_is_unknown(self, raw):
        assert isinstance(decode_timestamp(raw), UnknownTimestamp)


class TestHelpers:
    def test_parse_status_time(self):
        assert parse_status_time("2024-01-01T00:00:01Z") == 1_704_067_201_000.0
        assert parse_status_time(None) is None
        assert parse_status_time(12345) is None

    def test_latency_is_clamped_at_zero(self):
        assert latency_between(1000, 400) == 600
        assert latency_between(1000, 1500) == 0
        assert latency_between(1000, None) is None
        assert latency_between(1000, float("-inf")) is None


class TestLatencyEstimator:
    def test_epoch_word(self):
        estimator = LatencyEstimator(SessionRegistry())
        word = {"text": "hi", "start_timestamp": {"absolute": 1_700_000_000}}
        assert estimator.estimate(word, "bot-1", now_ms=0) == 1_700_000_000_000.0

    def test_relative_uses_recording_start(self):
        estimator = LatencyEstimator(SessionRegistry())
        estimator.mark_recording_started("bot-1", 50_000)

        word = {"text": "hi", "start_timestamp": {"relative": 1.5}}
        assert estimator.estimate(word, "bot-1", now_ms=60_000) == 51_500

    def test_relative_without_start_calibrates_then_estimates(self):
        estimator = LatencyEstimator(SessionRegistry())

        first = estimator.estimate({"start_timestamp": {"relative": 2.0}}, "bot-1", now_ms=10_000)
        second = estimator.estimate({"start_timestamp": {"relative": 3.0}}, "bot-1", now_ms=12_000)

        assert first is None
        assert second == 11_000

    def test_recording_start_clears_learned_base(self):
        registry = SessionRegistry()
        estimator = LatencyEstimator(registry)
        estimator.estimate({"start_timestamp": {"relative": 2.0}}, "bot-1", now_ms=10_000)

        estimator.mark_recording_started("bot-1", 100_000)

        assert registry.get("bot-1").relative_epoch_base_ms is None
        assert estimator.estimate({"start_timestamp": {"relative": 1.0}}, "bot-1", now_ms=0) == 101_000

    def test_bases_are_per_bot(self):
        estimator = LatencyEstimator(SessionRegistry())
        estimator.mark_recording_started("bot-1", 50_000)

        assert estimator.estimate({"start_timestamp": {"relative": 1.0}}, "bot-2", now_ms=9_000) is None
        assert estimator.estimate({"start_timestamp": {"relative": 1.0}}, "bot-1", now_ms=9_000) == 51_000

    def test_forgotten_bot_loses_timing(self):
        registry = SessionRegistry()
        estimator = LatencyEstimator(registry)
        estimator.mark_recording_started("bot-1", 50_000)

        registry.forget("bot-1")

        assert estimator.estimate({"start_timestamp": {"relative": 1.0}}, "bot-1", now_ms=9_000) is None

    def test_missing_word_or_timestamp(self):
        estimator = LatencyEstimator(SessionRegistry())
        assert estimator.estimate(None, "bot-1", now_ms=0) is None
        assert estimator.estimate({"text": "hi"}, "bot-1", now_ms=0) is None

    def test_out_of_range_word_has_no_estimate(self):
        registry = SessionRegistry()
        estimator = LatencyEstimator(registry)

        assert estimator.estimate({"start_timestamp": 10**400}, "bot-1", now_ms=0) is None
        assert estimator.estimate({"start_timestamp": {"relative": 10**400}}, "bot-1", now_ms=0) is None
        assert registry.get("bot-1") is None
