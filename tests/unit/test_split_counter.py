from datetime import timedelta

from paceloop.core.tracker import SplitCounter


def test_first_split_measured_from_zero():
    counter = SplitCounter()
    assert counter.evaluate((), 1.2, timedelta(seconds=330)) == (timedelta(seconds=330),)


def test_zero_elapsed_never_splits():
    counter = SplitCounter()
    assert counter.evaluate((), 1.2, timedelta(0)) == ()


def test_existing_splits_unchanged_below_next_unit():
    counter = SplitCounter()
    splits = counter.evaluate((), 1.0, timedelta(seconds=300))
    assert counter.evaluate(splits, 1.9, timedelta(seconds=500)) == splits


def test_custom_unit():
    counter = SplitCounter(unit_km=0.5)
    splits = counter.evaluate((), 0.6, timedelta(seconds=150))
    splits = counter.evaluate(splits, 1.1, timedelta(seconds=310))
    assert splits == (timedelta(seconds=150), timedelta(seconds=160))


def test_backfill_divides_time_evenly():
    counter = SplitCounter(backfill=True)
    splits = counter.evaluate((), 3.2, timedelta(seconds=900))
    assert splits == (timedelta(seconds=300),) * 3


def test_reset():
    counter = SplitCounter()
    counter.evaluate((), 1.0, timedelta(seconds=300))
    counter.reset()
    assert counter.last_boundary_elapsed == timedelta(0)
