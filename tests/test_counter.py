"""Tests for repetition counting."""

import pytest

from handson.counter import CounterState, RepetitionCounter


class TestRepetitionCounter:
    def test_starts_idle(self):
        counter = RepetitionCounter()
        assert counter.state is CounterState.IDLE
        assert counter.count == 0
        assert counter.maximum == 50

    def test_passing_match_increments(self):
        counter = RepetitionCounter()
        counter.update(True)
        assert counter.count == 1
        assert counter.state is CounterState.ACCUMULATING

    def test_failing_match_leaves_count(self):
        counter = RepetitionCounter()
        counter.update(True)
        counter.update(False)
        assert counter.count == 1

    def test_completes_exactly_once(self):
        counter = RepetitionCounter(maximum=5)
        fired = []
        counter.on_complete(lambda: fired.append(counter.count))

        results = [counter.update(True) for _ in range(8)]

        assert results == [False] * 4 + [True] + [False] * 3
        assert fired == [5]
        assert counter.count == 5
        assert counter.has_completed

    def test_count_never_exceeds_maximum(self):
        counter = RepetitionCounter(maximum=3, step=2.0)
        for _ in range(4):
            counter.update(True)
        assert counter.count == 3

    def test_reset(self):
        counter = RepetitionCounter(maximum=2)
        fired = []
        counter.on_complete(lambda: fired.append(1))
        counter.update(True)
        counter.update(True)
        counter.reset()
        assert counter.state is CounterState.IDLE
        assert counter.count == 0

        counter.update(True)
        counter.update(True)
        assert fired == [1, 1]

    def test_progress(self):
        counter = RepetitionCounter(maximum=4)
        counter.update(True)
        assert counter.progress == pytest.approx(0.25)

    def test_invalid_maximum(self):
        with pytest.raises(ValueError):
            RepetitionCounter(maximum=0)
