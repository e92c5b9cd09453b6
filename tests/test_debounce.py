"""Tests for RecognitionDebouncer and HighlightTimer."""

from rollcall.processing.debounce import (
    Action,
    ActionKind,
    CooldownTracker,
    HighlightTimer,
    RecognitionDebouncer,
)


def kinds(actions):
    return [a.kind for a in actions]


class TestCooldown:
    def test_one_event_inside_window(self):
        debouncer = RecognitionDebouncer()
        first = debouncer.on_observed("A", 0)
        second = debouncer.on_observed("A", 29999)

        assert Action(ActionKind.LOG_EVENT, "A") in first
        assert ActionKind.LOG_EVENT not in kinds(second)

    def test_second_event_after_window(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        debouncer.on_observed("A", 29999)
        third = debouncer.on_observed("A", 30001)
        assert kinds(third) == [ActionKind.LOG_EVENT]

    def test_boundary_is_inclusive(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        assert ActionKind.LOG_EVENT in kinds(debouncer.on_observed("A", 30000))

    def test_cooldown_is_per_identity(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        actions = debouncer.on_observed("B", 10)
        assert Action(ActionKind.LOG_EVENT, "B") in actions

    def test_custom_cooldown(self):
        debouncer = RecognitionDebouncer(cooldown_ms=1000)
        debouncer.on_observed("A", 0)
        assert ActionKind.LOG_EVENT in kinds(debouncer.on_observed("A", 1000))

    def test_tracker_remaining(self):
        tracker = CooldownTracker(cooldown_ms=30000)
        tracker.record_event("A", 1000)
        assert tracker.get_remaining_ms("A", 11000) == 20000
        assert tracker.get_remaining_ms("B", 11000) == 0


class TestHighlight:
    def test_continuous_recognition_highlights_once(self):
        debouncer = RecognitionDebouncer()
        highlights = 0
        for i in range(50):
            actions = debouncer.on_observed("A", i * 100)
            highlights += kinds(actions).count(ActionKind.HIGHLIGHT)
        assert highlights == 1

    def test_first_frame_emits_highlight_and_event(self):
        actions = RecognitionDebouncer().on_observed("A", 0)
        assert actions == [
            Action(ActionKind.HIGHLIGHT, "A"),
            Action(ActionKind.LOG_EVENT, "A"),
        ]

    def test_dropout_rehighlights_without_event(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        assert debouncer.on_observed(None, 1000) == []
        assert debouncer.last_identity is None
        assert kinds(debouncer.on_observed("A", 2000)) == [ActionKind.HIGHLIGHT]

    def test_identity_change(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        actions = debouncer.on_observed("B", 100)
        assert Action(ActionKind.HIGHLIGHT, "B") in actions
        assert debouncer.last_identity == "B"

    def test_none_never_emits(self):
        debouncer = RecognitionDebouncer()
        assert debouncer.on_observed(None, 0) == []

    def test_reset(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        debouncer.reset()
        assert kinds(debouncer.on_observed("A", 10)) == [ActionKind.HIGHLIGHT, ActionKind.LOG_EVENT]

    def test_clear_frame_keeps_cooldown(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        debouncer.clear_frame()
        assert kinds(debouncer.on_observed("A", 5000)) == [ActionKind.HIGHLIGHT]
        assert kinds(debouncer.on_observed("A", 30000)) == [ActionKind.LOG_EVENT]

    def test_failed_event_can_be_logged_again(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        debouncer.event_failed("A", 0)
        assert kinds(debouncer.on_observed("A", 200)) == [ActionKind.LOG_EVENT]

    def test_event_failed_ignores_newer_event(self):
        debouncer = RecognitionDebouncer()
        debouncer.on_observed("A", 0)
        debouncer.event_failed("A", 999)
        assert debouncer.on_observed("A", 200) == []


class TestHighlightTimer:
    def test_expire_calls_callback(self, fake_timer):
        cleared = []
        timer = HighlightTimer(lambda: cleared.append(1), timeout=5.0, timer_factory=fake_timer)
        timer.arm()

        created = fake_timer.created[0]
        assert created.interval == 5.0
        assert created.started is True
        created.fire()
        assert cleared == [1]
        assert timer.active is False

    def test_rearm_cancels_previous(self, fake_timer):
        cleared = []
        timer = HighlightTimer(lambda: cleared.append(1), timer_factory=fake_timer)
        timer.arm()
        timer.arm()

        first, second = fake_timer.created
        assert first.cancelled is True
        assert second.cancelled is False

        # A stale timer that fires anyway must not clear the new highlight
        first.fire()
        assert cleared == []
        assert timer.active is True

        second.fire()
        assert cleared == [1]

    def test_cancel(self, fake_timer):
        timer = HighlightTimer(lambda: None, timer_factory=fake_timer)
        timer.arm()
        timer.cancel()
        assert fake_timer.created[0].cancelled is True
        assert timer.active is False
        timer.cancel()
