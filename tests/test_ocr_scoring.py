"""
Tests for transcript scoring
"""

from memubot.modules.ocr_scoring import KeywordScorer, ScoringWeights


def test_empty_transcript_scores_zero():
    scorer = KeywordScorer()

    assert scorer.score("") == 0
    assert scorer.score("   \n ") == 0


def test_clean_panel_scores_vocabulary_structure_and_lines():
    # march queue 20 + idle 15 + numbered header 10 + three clean lines 15
    score = KeywordScorer().score("March Queue 1\nIdle\nMarch Queue 2")

    assert score == 60


def test_resource_site_and_timer_lines():
    # march queue 20 + numbered header 10 + resource site 5 + header line 5 + timer line 5
    score = KeywordScorer().score("March Queue 1\nGathering mill 01:02:03")

    assert score == 45


def test_garbage_markers_are_penalized():
    scorer = KeywordScorer()
    clean = scorer.score("March Queue 1\nIdle")

    assert scorer.score("March Queue 1\nIdle ] x") == clean - 5 - 5
    assert scorer.score("March Queue 1\nIdle\nirc") == clean - 3


def test_better_reading_outranks_garbled_one():
    scorer = KeywordScorer()
    good = "March Queue 1\nIdle\nMarch Queue 2\nUnlock\nMarch Queue 3\nCannot use"
    garbled = "Marc Queu 1\nldle) x\nMarch Oueue\nUnIock"

    assert scorer.score(good) > scorer.score(garbled)


def test_weights_are_tunable():
    scorer = KeywordScorer(ScoringWeights(header=0, numbered_header=0, clean_line=0, idle=1))

    assert scorer.score("March Queue 1\nIdle") == 1
