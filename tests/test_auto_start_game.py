"""
Tests for the AutoStartGame controller
"""

import pytest

from conftest import make_screen
from memubot.core.instance_registry import TaskKind
from memubot.modules.auto_start_game import AutoStartGame
from memubot.modules.task_controller import ControllerState, TaskOutcome

JOIN_TIMEOUT = 10


def run_to_end(controller):
    assert controller.start()
    assert controller.join(JOIN_TIMEOUT)
    return controller.run_state


@pytest.fixture
def make_controller(instance, gateway, config, matcher):
    def factory(attempts=3, **kwargs):
        return AutoStartGame(instance, gateway, attempts=attempts, config=config, matcher=matcher, **kwargs)
    return factory


def test_running_game_ends_done_without_taps(make_controller, bridge, icons, recorder, instance):
    bridge.screen = make_screen(icons=[(icons["game_icon.png"], (180, 300))])
    completed = []

    state = run_to_end(make_controller(on_complete=lambda: completed.append(True)))

    assert state.outcome is TaskOutcome.DONE
    assert state.attempt_index == 1
    assert state.phase is ControllerState.FINISHED
    assert bridge.taps == []
    assert "Game already running" in recorder.states
    assert "Game running successfully" in recorder.states
    assert recorder.states[-1] == "Idle"
    assert not instance.auto_start_running
    assert completed == [True]


def test_consumed_capture_is_not_matched(make_controller, gateway, bridge, icons):
    bridge.screen = make_screen(icons=[(icons["game_icon.png"], (180, 300))])
    controller = make_controller()
    capture = gateway.capture(0, "menu")

    assert controller.locate(capture, "game_icon.png") is not None
    capture.consume()
    assert controller.locate(capture, "game_icon.png") is None


def test_screenshot_failures_use_up_attempt_slots(make_controller, bridge, config, recorder, instance):
    bridge.pull_payloads = [b"x" * 100] * 100

    state = run_to_end(make_controller(attempts=2))

    assert state.outcome is TaskOutcome.GIVEN_UP
    assert state.attempt_index == 2
    assert "[ERROR] Screenshot failed (1/2)" in recorder.states
    assert "[ERROR] Screenshot failed (2/2)" in recorder.states
    assert bridge.capture_calls >= 2 * config.capture.max_attempts
    assert bridge.taps == []
    assert not instance.auto_start_running


def test_launcher_is_tapped_each_attempt(make_controller, bridge, icons, recorder):
    bridge.screen = make_screen(icons=[(icons["game_launcher.png"], (60, 500))])

    state = run_to_end(make_controller(attempts=2))

    assert state.outcome is TaskOutcome.GIVEN_UP
    assert bridge.taps == [(80, 520), (80, 520)]
    assert "Launched game (1/2)" in recorder.states
    assert "Launched game (2/2)" in recorder.states


def test_failed_tap_is_reported(make_controller, bridge, icons, recorder):
    bridge.screen = make_screen(icons=[(icons["game_launcher.png"], (60, 500))])
    bridge.tap_ok = False

    run_to_end(make_controller(attempts=1))

    assert "[ERROR] Click failed (1/1)" in recorder.states


def test_missing_launcher_is_reported(make_controller, recorder):
    state = run_to_end(make_controller(attempts=2))

    assert state.outcome is TaskOutcome.GIVEN_UP
    assert "[ERROR] Launcher not found (1/2)" in recorder.states
    assert "[ERROR] Launcher not found (2/2)" in recorder.states


def test_closing_popup_does_not_use_an_attempt(make_controller, bridge, icons, recorder):
    bridge.screen = make_screen(icons=[(icons["close_x2.png"], (300, 40))])
    game_screen = make_screen(icons=[(icons["game_icon.png"], (180, 300))])

    def dismiss(x, y):
        bridge.screen = game_screen
    bridge.on_tap = dismiss

    state = run_to_end(make_controller(attempts=1))

    assert state.outcome is TaskOutcome.DONE
    assert state.attempt_index == 1
    assert bridge.taps == [(320, 60)]
    assert "Closed popup (1/1)" in recorder.states


def test_endless_popups_still_terminate(make_controller, bridge, icons, config):
    config.auto_start.max_popup_closes = 2
    bridge.screen = make_screen(icons=[(icons["close_x.png"], (300, 40))])

    state = run_to_end(make_controller(attempts=2))

    assert state.outcome is TaskOutcome.GIVEN_UP
    assert len(bridge.taps) == 3


def test_stop_mid_attempt_exits_and_clears_flag(make_controller, config, recorder, instance):
    config.auto_start.attempt_interval = 30
    controller = make_controller(attempts=10)
    first_miss = recorder.event_for("[ERROR] Launcher not found")

    assert controller.start()
    assert first_miss.wait(JOIN_TIMEOUT)
    controller.stop()

    assert controller.join(2)
    assert controller.run_state.outcome is TaskOutcome.CANCELLED
    assert controller.run_state.attempt_index == 1
    assert not instance.auto_start_running
    assert recorder.states[-1] == "Idle"


def test_second_start_on_same_instance_is_a_no_op(make_controller, config, recorder, instance):
    config.auto_start.attempt_interval = 30
    first = make_controller(attempts=10)
    second = make_controller(attempts=10)
    first_miss = recorder.event_for("[ERROR] Launcher not found")

    assert first.start()
    assert first_miss.wait(JOIN_TIMEOUT)
    attempt_before = first.run_state.attempt_index

    assert not second.start()
    assert not second.is_alive()
    assert first.run_state.attempt_index == attempt_before
    assert instance.is_running(TaskKind.AUTO_START)

    first.stop()
    assert first.join(2)
    assert not instance.is_running(TaskKind.AUTO_START)
    assert second.start()
    second.stop()
    assert second.join(2)


def test_final_status_reflects_running_gather(make_controller, bridge, icons, instance, recorder):
    bridge.screen = make_screen(icons=[(icons["game_icon.png"], (180, 300))])
    assert instance.try_acquire(TaskKind.AUTO_GATHER)

    run_to_end(make_controller())

    assert recorder.states[-1] == "Gathering resources"


def test_unexpected_error_ends_failed(make_controller, bridge, recorder, instance):
    def explode(*args, **kwargs):
        raise RuntimeError("bridge exploded")
    bridge.capture = explode

    state = run_to_end(make_controller())

    assert state.outcome is TaskOutcome.FAILED
    assert "[ERROR] bridge exploded" in recorder.states
    assert not instance.auto_start_running
