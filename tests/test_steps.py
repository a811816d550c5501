"""
Step Runner Tests
=================

Ordering, error propagation and abort behaviour of named step chains.
"""

import pytest

from async_hd44780.errors import HD44780Error, LineWriteError
from async_hd44780.steps import OperationContext, Step, run_parallel, run_series


def delayed(ctx, log, name, delay_ms=1):
    """Step that logs its name after a delay."""

    def action(done):
        def fire():
            log.append(name)
            done()
        ctx.delay(delay_ms, fire)

    return Step(name, action)


def failing(name, error):
    return Step(name, lambda done: done(error))


@pytest.fixture
def ctx(scheduler):
    return OperationContext("test", scheduler)


# =============================================================================
# Series
# =============================================================================

class TestRunSeries:
    """Test strictly ordered execution."""

    def test_runs_in_order(self, ctx, scheduler, recorder):
        log = []
        done = recorder()
        run_series(ctx, [
            delayed(ctx, log, "a", 5),
            delayed(ctx, log, "b", 1),
            delayed(ctx, log, "c", 3),
        ], done)
        scheduler.run_until_idle()
        assert log == ["a", "b", "c"]
        assert scheduler.now == 9
        assert done.error is None

    def test_step_waits_for_previous(self, ctx, scheduler, recorder):
        """The second step is not started before the first completes."""
        log = []
        run_series(ctx, [delayed(ctx, log, "a", 5), delayed(ctx, log, "b", 1)], recorder())
        scheduler.advance(4)
        assert log == []
        assert ctx.current_step == "a"

    def test_empty_series(self, ctx, recorder):
        done = recorder()
        run_series(ctx, [], done)
        assert done.error is None

    def test_error_skips_remaining(self, ctx, scheduler, recorder):
        log = []
        done = recorder()
        error = LineWriteError("boom", line=22)
        run_series(ctx, [
            delayed(ctx, log, "a"),
            failing("b", error),
            delayed(ctx, log, "c"),
        ], done)
        scheduler.run_until_idle()
        assert log == ["a"]
        assert done.error is error

    def test_line_error_annotated_with_step(self, ctx, recorder):
        done = recorder()
        run_series(ctx, [failing("register-select", LineWriteError("boom"))], done)
        assert done.error.step == "register-select"
        assert "step=register-select" in str(done.error)

    def test_innermost_step_kept(self, ctx, recorder):
        """An error crossing nested chains keeps the innermost step name."""
        done = recorder()
        inner = Step("outer", lambda d: run_series(
            ctx, [failing("inner", LineWriteError("boom"))], d))
        run_series(ctx, [inner], done)
        assert done.error.step == "inner"

    def test_synchronous_raise_reported(self, ctx, recorder):
        done = recorder()

        def action(done):
            raise LineWriteError("sync")

        run_series(ctx, [Step("raiser", action)], done)
        assert isinstance(done.error, LineWriteError)

    def test_programming_errors_propagate(self, ctx, recorder):
        """Only driver errors are converted to completions."""

        def action(done):
            raise ZeroDivisionError()

        with pytest.raises(ZeroDivisionError):
            run_series(ctx, [Step("bug", action)], recorder())

    def test_completion_called_once(self, ctx, recorder):
        """A step calling done twice does not advance twice."""
        done = recorder()
        log = []

        def twice(d):
            d(HD44780Error("first"))
            d(HD44780Error("second"))

        run_series(ctx, [Step("twice", twice), Step("next", lambda d: log.append(1))], done)
        assert done.count == 1
        assert log == []

    def test_abort_stops_chain(self, ctx, scheduler, recorder):
        log = []
        done = recorder()
        run_series(ctx, [delayed(ctx, log, "a"), delayed(ctx, log, "b")], done)
        ctx.abort()
        scheduler.run_until_idle()
        assert log == []
        assert done.count == 0


# =============================================================================
# Parallel
# =============================================================================

class TestRunParallel:
    """Test joined execution of independent steps."""

    def test_joins_all(self, ctx, scheduler, recorder):
        log = []
        done = recorder()
        run_parallel(ctx, [delayed(ctx, log, "a", 3), delayed(ctx, log, "b", 1)], done)
        assert done.count == 0
        scheduler.run_until_idle()
        assert sorted(log) == ["a", "b"]
        assert done.error is None

    def test_all_attempted_first_error_reported(self, ctx, recorder):
        done = recorder()
        attempted = []
        first = LineWriteError("first")

        def ok(d):
            attempted.append("ok")
            d()

        run_parallel(ctx, [
            failing("data0", first),
            Step("data1", ok),
            failing("data2", LineWriteError("second")),
        ], done)
        assert attempted == ["ok"]
        assert done.error is first
        assert first.step == "data0"

    def test_empty(self, ctx, recorder):
        done = recorder()
        run_parallel(ctx, [], done)
        assert done.error is None


# =============================================================================
# Operation Context
# =============================================================================

class TestOperationContext:
    """Test timer tracking and abort."""

    def test_delay_tracks_handle(self, ctx, scheduler):
        ctx.delay(1, lambda: None)
        assert ctx.active_timer is not None
        assert ctx.active_timer.pending
        scheduler.run_until_idle()
        assert ctx.active_timer is None

    def test_abort_cancels_timer(self, ctx, scheduler):
        fired = []
        ctx.delay(1, lambda: fired.append(1))
        handle = ctx.active_timer
        ctx.abort()
        assert handle.cancelled
        assert ctx.aborted
        assert ctx.active_timer is None
        scheduler.run_until_idle()
        assert fired == []

    def test_repr(self, ctx):
        assert "test" in repr(ctx)
