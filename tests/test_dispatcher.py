"""Tests for the concurrent dispatcher."""

import random
import threading
import time

import pytest

from postlingo.dispatcher import CancellationToken, Dispatcher
from postlingo.errors import (
    BatchMismatchError,
    InputTooLargeError,
    TranslationCancelled,
    UnitTranslationError,
)
from postlingo.structures import TokenUsage, UnitResult


def usage(total):
    return TokenUsage(input_tokens=total, output_tokens=0, total_tokens=total)


class TestOrdering:
    def test_results_follow_unit_order_despite_jitter(self):
        rng = random.Random(7)
        delays = [rng.uniform(0, 0.02) for _ in range(25)]

        def translate(unit, token):
            time.sleep(delays[unit])
            return UnitResult(value=f"T({unit})", usage=usage(1))

        outcome = Dispatcher(max_workers=8).dispatch(list(range(25)), translate)
        assert outcome.results == [f"T({i})" for i in range(25)]
        assert outcome.usage.total_tokens == 25

    def test_reverse_completion_order(self):
        def translate(unit, token):
            time.sleep(0.01 * (5 - unit))
            return UnitResult(value=unit * 10)

        outcome = Dispatcher(max_workers=5).dispatch([0, 1, 2, 3, 4], translate)
        assert outcome.results == [0, 10, 20, 30, 40]

    def test_empty_input(self):
        outcome = Dispatcher().dispatch([], lambda unit, token: UnitResult(value=unit))
        assert outcome.results == []
        assert outcome.usage == TokenUsage()


class TestFaultIsolation:
    def test_other_units_finish_and_usage_is_kept(self):
        finished = []
        lock = threading.Lock()

        def translate(unit, token):
            time.sleep(0.005 * unit)
            if unit == 2:
                raise RuntimeError("service exploded")
            with lock:
                finished.append(unit)
            return UnitResult(value=unit, usage=usage(10))

        with pytest.raises(UnitTranslationError) as info:
            Dispatcher(max_workers=3).dispatch(list(range(6)), translate)

        assert sorted(finished) == [0, 1, 3, 4, 5]
        assert info.value.ordinal == 2
        assert isinstance(info.value.cause, RuntimeError)
        assert info.value.usage.total_tokens == 50
        assert "unit 2" in str(info.value)

    def test_log_and_error_name_the_same_unit(self, caplog):
        def translate(unit, token):
            if unit == 1:
                raise RuntimeError("rejected")
            return UnitResult(value=unit)

        with caplog.at_level("WARNING", logger="postlingo.dispatcher"):
            with pytest.raises(UnitTranslationError) as info:
                Dispatcher(unit_label="chunk").dispatch([0, 1, 2], translate)

        assert str(info.value) == "chunk 1 translation failed: rejected"
        assert "chunk 1 translation failed: rejected" in caplog.messages

    def test_first_error_in_unit_order_wins(self):
        def translate(unit, token):
            if unit == 4:
                raise ValueError("early failure of a later unit")
            if unit == 1:
                time.sleep(0.03)
                raise ValueError("late failure of an earlier unit")
            return UnitResult(value=unit)

        with pytest.raises(UnitTranslationError) as info:
            Dispatcher(max_workers=6).dispatch(list(range(6)), translate)
        assert info.value.ordinal == 1

    def test_usage_attached_to_error_is_counted(self):
        def translate(unit, token):
            if unit == 0:
                raise BatchMismatchError("count mismatch", usage=usage(7))
            return UnitResult(value=unit, usage=usage(3))

        with pytest.raises(UnitTranslationError) as info:
            Dispatcher().dispatch([0, 1], translate)
        assert info.value.usage.total_tokens == 10

    def test_label_appears_in_error(self):
        def translate(unit, token):
            raise RuntimeError("boom")

        with pytest.raises(UnitTranslationError, match="chunk 0"):
            Dispatcher(unit_label="chunk").dispatch(["a"], translate)


class TestLimits:
    def test_too_many_units_rejected_before_any_call(self):
        calls = []

        def translate(unit, token):
            calls.append(unit)
            return UnitResult(value=unit)

        with pytest.raises(InputTooLargeError) as info:
            Dispatcher(max_units=3).dispatch([1, 2, 3, 4], translate)
        assert calls == []
        assert info.value.limit == 3
        assert "3" in str(info.value)

    def test_worker_count_is_bounded(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def translate(unit, token):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with lock:
                active -= 1
            return UnitResult(value=unit)

        Dispatcher(max_workers=2).dispatch(list(range(8)), translate)
        assert peak <= 2


class TestCancellation:
    def test_cancelled_token_fails_every_unit(self):
        calls = []
        token = CancellationToken()
        token.cancel()

        def translate(unit, tok):
            calls.append(unit)
            return UnitResult(value=unit)

        with pytest.raises(UnitTranslationError) as info:
            Dispatcher().dispatch([1, 2], translate, cancellation=token)
        assert calls == []
        assert isinstance(info.value.cause, TranslationCancelled)

    def test_token_is_passed_to_units(self):
        token = CancellationToken(timeout=60)
        seen = []

        def translate(unit, tok):
            seen.append(tok)
            return UnitResult(value=unit)

        Dispatcher().dispatch([1], translate, cancellation=token)
        assert seen == [token]

    def test_deadline(self):
        token = CancellationToken(timeout=0)
        assert token.cancelled
        assert token.remaining() == 0.0
        with pytest.raises(TranslationCancelled, match="deadline"):
            token.raise_if_cancelled()

    def test_no_deadline(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.remaining() is None
