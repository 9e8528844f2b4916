"""
Tests for the march panel classifier and the queue helpers
"""

import cv2
import pytest

from conftest import FakeOCRReader
from memubot.modules.march_detector import (
    MarchDetector,
    analyze_gathering_needs,
    get_available_queues,
    summarize_queues,
)
from memubot.modules.march_parser import MarchQueueRecord, MarchStatus
from memubot.utils.module_settings import GatherResourcesSettings, MarchSetting

PANEL = "March Queue 1\nIdle\nMarch Queue 2\nGathering lv3 mill"


@pytest.fixture
def reader():
    return FakeOCRReader({
        "psm6_lstm": "Marc Queu 1\nldle) x",
        "psm4_lstm": PANEL,
        "psm6_legacy": "",
        "psm3_lstm": "March Queue 1",
        "psm6_otsu": PANEL,
    })


@pytest.fixture
def detector(gateway, config, reader):
    return MarchDetector(gateway, config, reader=reader)


def test_read_queues_uses_best_transcript(detector, reader):
    queues = detector.read_queues(0)

    assert queues == [
        MarchQueueRecord(1, MarchStatus.IDLE),
        MarchQueueRecord(2, MarchStatus.GATHERING, resource_info="Food"),
    ]
    assert [name for name, _ in reader.calls] == [
        "psm6_lstm", "psm4_lstm", "psm6_legacy", "psm3_lstm", "psm6_otsu",
    ]


def test_ties_keep_first_variant(detector):
    panel = cv2.imread(str(detector.gateway.capture(0, "march_full").path))

    best = detector.best_transcript(panel)

    assert best.variant.name == "psm4_lstm"
    assert best.transcript == PANEL


def test_repeated_reads_are_identical(detector):
    assert detector.read_queues(0) == detector.read_queues(0)


def test_panel_crop_is_saved(detector, reader, config):
    detector.read_queues(3)

    panel_path = detector.gateway.frame_store.path_for(3, "march_text_panel")
    assert panel_path.exists()
    assert reader.calls[0][1][:2] == (310, 230)


def test_unavailable_engine_returns_no_queues(gateway, bridge, config):
    detector = MarchDetector(gateway, config, reader=FakeOCRReader(available=False))

    assert detector.read_queues(0) == []
    assert bridge.capture_calls == 0


def test_capture_failure_returns_no_queues(gateway, bridge, config, reader):
    bridge.capture_ok = False
    detector = MarchDetector(gateway, config, reader=reader)

    assert detector.read_queues(0) == []
    assert reader.calls == []


def test_all_empty_transcripts_return_no_queues(gateway, config):
    detector = MarchDetector(gateway, config, reader=FakeOCRReader({}))

    assert detector.read_queues(0) == []


def test_negative_scores_return_no_queues(gateway, config):
    garbage = {variant['name']: "Pause) 12" for variant in config.ocr.variants}
    detector = MarchDetector(gateway, config, reader=FakeOCRReader(garbage))

    panel = cv2.imread(str(gateway.capture(0, "march_full").path))
    assert detector.best_transcript(panel) is None
    assert detector.read_queues(0) == []


def test_consumed_capture_is_not_cropped(detector, gateway):
    capture = gateway.capture(0, "march_full")

    assert detector.extract_panel(capture, 0) is not None
    capture.consume()
    assert detector.extract_panel(capture, 0) is None


def test_panel_rect_scales_with_resolution(detector):
    assert detector.panel_rect(400, 652) == (50, 190, 230, 310)
    assert detector.panel_rect(800, 1304) == (100, 380, 460, 620)


def test_panel_rect_is_clamped(detector, config):
    config.ocr.panel_region = [350, 600, 230, 310]

    assert detector.panel_rect(400, 652) == (350, 600, 50, 52)


def test_available_queues_are_idle_only():
    queues = [
        MarchQueueRecord(1, MarchStatus.IDLE),
        MarchQueueRecord(2, MarchStatus.GATHERING),
        MarchQueueRecord(3, MarchStatus.UNLOCK),
    ]

    assert get_available_queues(queues) == [MarchQueueRecord(1, MarchStatus.IDLE)]


def test_summarize_counts_every_status():
    counts = summarize_queues([
        MarchQueueRecord(1, MarchStatus.GATHERING),
        MarchQueueRecord(2, MarchStatus.GATHERING),
        MarchQueueRecord(3, MarchStatus.CANNOT_USE),
    ])

    assert counts == {
        MarchStatus.IDLE: 0,
        MarchStatus.UNLOCK: 0,
        MarchStatus.CANNOT_USE: 1,
        MarchStatus.GATHERING: 2,
    }


def test_gathering_needs_match_active_marches_and_assign_idle_queues():
    settings = GatherResourcesSettings(enabled=True, number_of_marches=3, marches=[
        MarchSetting(1, "Food", 2),
        MarchSetting(2, "Iron", 1),
        MarchSetting(3, "Wood", 3),
    ])
    queues = [
        MarchQueueRecord(1, MarchStatus.GATHERING, resource_info="Food"),
        MarchQueueRecord(2, MarchStatus.IDLE),
        MarchQueueRecord(3, MarchStatus.UNLOCK),
    ]

    plan = analyze_gathering_needs(queues, settings)

    assert list(plan.active) == [1]
    assert [(s.march_number, q.queue_number if q else None) for s, q in plan.to_start] == [(2, 2), (3, None)]
    assert [s.march_number for s in plan.waiting] == [3]
