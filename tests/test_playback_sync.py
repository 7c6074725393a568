import pytest

from lrcsync.clock import ManualClock
from lrcsync.lrc_parser import SyncedLine
from lrcsync.playback_sync import LineTracker, PlaybackFollower, current_line_index


@pytest.mark.parametrize(
    "t, expected",
    [(-1.0, -1), (0.0, 0), (1.0, 0), (2.0, 1), (4.9, 1), (5.0, 2), (500.0, 2)],
)
def test_current_line_index(sample_lines, t, expected):
    assert current_line_index(sample_lines, t) == expected


def test_current_line_index_no_lines():
    assert current_line_index([], 3.0) == -1


def test_current_line_index_before_first_line():
    lines = [SyncedLine(3.0, "a"), SyncedLine(4.0, "b")]
    assert current_line_index(lines, 1.0) == -1


class TestLineTracker:
    def test_matches_pure_function_on_seeks(self, sample_lines):
        tracker = LineTracker(sample_lines)
        for t in [-1.0, 0.0, 1.0, 2.0, 4.9, 5.0, 10.0, 3.0, 0.5, 2.0, -0.5, 6.0]:
            assert tracker.locate(t) == current_line_index(sample_lines, t)

    def test_update_reports_changes(self, sample_lines):
        tracker = LineTracker(sample_lines)
        assert tracker.update(0.5) == (0, True)
        assert tracker.update(1.5) == (0, False)
        assert tracker.update(2.0) == (1, True)
        assert tracker.update(0.1) == (0, True)

    def test_set_lines_resets(self, sample_lines):
        tracker = LineTracker(sample_lines)
        tracker.locate(6.0)
        tracker.set_lines([SyncedLine(1.0, "x")])
        assert tracker.last_index == -1
        assert tracker.locate(6.0) == 0

    def test_line_status(self, sample_lines):
        tracker = LineTracker(sample_lines)
        tracker.locate(3.0)
        assert [tracker.line_status(i) for i in range(3)] == ["past", "current", "future"]
        assert tracker.line_status(0, current_index=-1) == "future"

    def test_past_indices(self, sample_lines):
        tracker = LineTracker(sample_lines)
        assert tracker.past_indices(6.0) == [0, 1]
        assert tracker.past_indices(-1.0) == []


@pytest.fixture
def follower(clock, sample_lines):
    follower = PlaybackFollower(clock)
    follower.set_lines(sample_lines)
    return follower


class TestPlaybackFollower:
    def test_refresh_notifies_only_on_change(self, clock, follower):
        states = []
        follower.on_line_changed(states.append)
        clock.play()

        clock.seek(1.0)
        state = follower.refresh()
        assert state is not None and state.current_line_index == 0
        assert follower.refresh() is None

        clock.seek(2.5)
        follower.refresh()
        assert [s.current_line_index for s in states] == [0, 1]
        assert states[-1].current_line == SyncedLine(2.0, "b")
        assert states[-1].position == 2.5

    def test_refresh_without_lines(self, clock):
        assert PlaybackFollower(clock).refresh() is None

    def test_offset_shifts_current_line(self, clock, follower):
        clock.seek(2.5)
        follower.refresh()
        assert follower.current_index == 1

        assert follower.adjust_offset(3000) == 3000
        assert follower.current_index == 2

        assert follower.undo_offset() == 0
        assert follower.current_index == 1

    def test_negative_offset_before_first_line(self, clock, follower):
        clock.seek(1.0)
        follower.adjust_offset(-2000)
        assert follower.current_index == -1

    def test_offset_is_clamped(self, follower):
        assert follower.adjust_offset(20000) == PlaybackFollower.MAX_OFFSET_MS
        assert follower.adjust_offset(-50000) == -PlaybackFollower.MAX_OFFSET_MS

    def test_custom_offset_limit(self, clock, sample_lines):
        follower = PlaybackFollower(clock, max_offset_ms=2000)
        follower.set_lines(sample_lines)
        assert follower.adjust_offset(2500) == 2000
        assert follower.adjust_offset(-9000) == -2000

    def test_reset_offset(self, follower):
        follower.adjust_offset(1500)
        follower.reset_offset()
        assert follower.offset_ms == 0
        assert follower.undo_offset() == 1500

    def test_initial_offset_from_lines(self, clock, sample_lines):
        follower = PlaybackFollower(clock)
        follower.set_lines(sample_lines, offset_ms=12000)
        assert follower.offset_ms == 10000

    def test_offset_change_forces_notification(self, clock, follower):
        states = []
        follower.on_line_changed(states.append)
        clock.seek(3.0)
        follower.refresh()
        follower.adjust_offset(500)
        assert len(states) == 2
        assert states[-1].offset_ms == 500

    def test_seek_to_line(self, clock, follower):
        follower.seek_to_line(2)
        assert clock.current_time == 5.0
        assert follower.current_index == 2

    def test_seek_to_line_compensates_offset(self, clock, follower):
        follower.adjust_offset(500)
        follower.seek_to_line(1)
        assert clock.current_time == pytest.approx(1.5)
        assert follower.current_index == 1

    def test_seek_to_invalid_line_is_ignored(self, clock, follower):
        clock.seek(1.0)
        follower.seek_to_line(10)
        assert clock.current_time == 1.0

    def test_context_and_progress(self, clock, follower):
        assert follower.get_context_lines() == []
        assert follower.get_progress() == (0, 3)

        clock.seek(2.5)
        follower.refresh()
        context = follower.get_context_lines(before=1, after=1)
        assert [(rel, line.text) for rel, line in context] == [(-1, "a"), (0, "b"), (1, "c")]
        assert follower.get_progress() == (2, 3)

    def test_pause_follows_clock_events(self, clock, follower):
        assert follower.is_paused
        clock.play()
        assert not follower.is_paused
        clock.pause()
        assert follower.is_paused

    def test_seek_while_paused_refreshes(self, clock, follower):
        states = []
        follower.on_line_changed(states.append)
        clock.seek(5.5)
        assert [s.current_line_index for s in states] == [2]

    def test_timer_loop(self, qapp, clock, follower):
        states = []
        follower.on_line_changed(states.append)

        follower.start()
        assert follower.is_running

        clock.play()
        clock.advance(2.5)
        follower._on_timer_tick()
        assert follower.current_index == 1

        clock.pause()
        clock.play()
        clock.advance(3.0)
        follower._on_timer_tick()
        assert follower.current_index == 2

        follower.stop()
        assert not follower.is_running
        assert [s.current_line_index for s in states] == [1, 2]

    def test_tick_ignored_when_stopped(self, clock, follower):
        clock.play()
        clock.seek(3.0)
        follower._on_timer_tick()
        assert follower.current_index == -1

    def test_failing_callback_is_logged(self, clock, follower):
        def broken(state):
            raise RuntimeError("boom")

        follower.on_line_changed(broken)
        clock.play()
        clock.seek(1.0)
        assert follower.refresh() is not None
