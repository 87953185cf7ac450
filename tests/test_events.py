"""Tests for the input bus, notifications and the violation banner."""

import asyncio

import pytest

from entity_canvas.events import POINTER_MOVE, POINTER_UP, InputBus, Modifiers
from entity_canvas.notifications import (
    LoggingNotifier,
    Notification,
    NotificationLevel,
    RecordingNotifier,
    ViolationBanner,
)
from entity_canvas.validation import Violation, ViolationCode


class TestInputBus:
    @pytest.mark.asyncio
    async def test_dispatches_to_matching_kind(self) -> None:
        bus = InputBus()
        moves, ups = [], []
        bus.listen(POINTER_MOVE, moves.append)
        bus.listen(POINTER_UP, ups.append)
        assert await bus.emit(POINTER_MOVE, "m") == 1
        assert moves == ["m"]
        assert ups == []

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self) -> None:
        bus = InputBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.listen(POINTER_UP, handler)
        await bus.emit(POINTER_UP, "u")
        assert seen == ["u"]

    @pytest.mark.asyncio
    async def test_listener_closed_during_dispatch_is_skipped(self) -> None:
        bus = InputBus()
        seen = []
        second = None

        def first(event):
            seen.append("first")
            second.close()

        bus.listen(POINTER_UP, first)
        second = bus.listen(POINTER_UP, lambda event: seen.append("second"))
        assert await bus.emit(POINTER_UP, None) == 1
        assert seen == ["first"]

    def test_close_and_context_manager(self) -> None:
        bus = InputBus()
        listener = bus.listen(POINTER_MOVE, print)
        with bus.listen(POINTER_UP, print):
            assert bus.listener_count == 2
            assert bus.has_listeners(POINTER_UP)
        listener.close()
        listener.close()
        assert bus.listener_count == 0


class TestModifiers:
    def test_multi_select_is_ctrl_or_meta(self) -> None:
        assert Modifiers(ctrl=True).multi_select
        assert Modifiers(meta=True).multi_select
        assert not Modifiers(shift=True).multi_select


class TestNotifiers:
    def test_recording_notifier(self) -> None:
        notifier = RecordingNotifier()
        notifier.notify(Notification(NotificationLevel.SUCCESS, "done"))
        notifier.notify(Notification(NotificationLevel.ERROR, "failed"))
        assert notifier.messages() == ["done", "failed"]
        assert notifier.messages(NotificationLevel.ERROR) == ["failed"]

    def test_logging_notifier(self, caplog) -> None:
        with caplog.at_level("WARNING", logger="entity_canvas"):
            LoggingNotifier().notify(Notification(NotificationLevel.WARNING, "careful"))
        assert "careful" in caplog.text


class TestViolationBanner:
    def test_expires_after_duration(self, clock) -> None:
        banner = ViolationBanner(3.0, clock)
        banner.show([Violation(ViolationCode.OVERLAP, "Entities cannot overlap")])
        assert banner.visible
        clock.advance(2.9)
        assert banner.visible
        clock.advance(0.2)
        assert not banner.visible
        assert banner.violations == ()

    def test_new_show_restarts_timer(self, clock) -> None:
        banner = ViolationBanner(3.0, clock)
        banner.show([Violation(ViolationCode.OVERLAP, "first")])
        clock.advance(2.0)
        banner.show([Violation(ViolationCode.SINGLETON, "second")])
        clock.advance(2.0)
        assert [v.message for v in banner.violations] == ["second"]

    @pytest.mark.asyncio
    async def test_timer_dismisses_inside_event_loop(self) -> None:
        banner = ViolationBanner(0.01)
        banner.show([Violation(ViolationCode.OVERLAP, "Entities cannot overlap")])
        await asyncio.sleep(0.05)
        assert banner._violations == ()
