"""
Tests for the memuc-backed device bridge
"""

import subprocess

import pytest

from memubot.core import device_bridge
from memubot.core.device_bridge import MemucBridge
from memubot.utils.config import BridgeConfig
from memubot.utils.exceptions import DeviceBridgeError


@pytest.fixture
def memuc(tmp_path, monkeypatch):
    path = tmp_path / "memuc"
    path.write_text("")
    bridge = MemucBridge(BridgeConfig(memuc_path=str(path)))
    calls = []

    def fake_run(command, capture_output, text, timeout):
        calls.append((command[1:], timeout))
        return subprocess.CompletedProcess(command, 0, stdout=fake_run.stdout, stderr="")
    fake_run.stdout = ""

    monkeypatch.setattr(device_bridge.subprocess, "run", fake_run)
    bridge.calls = calls
    bridge.fake_run = fake_run
    return bridge


def test_commands_go_through_memuc_adb(memuc):
    assert memuc.capture(2, "/sdcard/screen.png", 10)
    assert memuc.pull(2, "/sdcard/screen.png", "screenshots/menu_2.png", 10)
    assert memuc.tap(2, 120, 340, 5)

    assert memuc.calls == [
        (['adb', '-i', '2', 'shell', 'screencap', '-p', '/sdcard/screen.png'], 10),
        (['adb', '-i', '2', 'pull', '/sdcard/screen.png', 'screenshots/menu_2.png'], 10),
        (['adb', '-i', '2', 'shell', 'input', 'tap', '120', '340'], 5),
    ]


@pytest.mark.parametrize("output, expected", [("1\n", True), ("Running", True), ("0\n", False), ("", False)])
def test_is_running_parses_status(memuc, output, expected):
    memuc.fake_run.stdout = output

    assert memuc.is_running(0) is expected


def test_timeout_is_a_failure(memuc, monkeypatch):
    def hang(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get('timeout'))
    monkeypatch.setattr(device_bridge.subprocess, "run", hang)

    assert not memuc.tap(0, 1, 1)
    assert not memuc.capture(0, "/sdcard/screen.png", 0.1)


def test_missing_memuc_fails_softly(monkeypatch):
    monkeypatch.setattr(device_bridge.shutil, "which", lambda name: None)
    monkeypatch.setattr(device_bridge.platform, "system", lambda: "Linux")

    bridge = MemucBridge(BridgeConfig(memuc_path="/nonexistent/memuc"))

    assert bridge.memuc_path is None
    assert not bridge.tap(0, 10, 10)
    with pytest.raises(DeviceBridgeError):
        bridge.check_available()
