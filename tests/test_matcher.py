"""Test title normalization, similarity and duration scoring"""

import pytest

from spot_radio.youtube.matcher import (
    bigram_similarity,
    duration_score,
    match_score,
    normalize_title,
)


class TestNormalizeTitle:
    """Test normalize_title()"""

    @pytest.mark.parametrize("raw, expected", [
        ("Song (feat. Someone)", "song"),
        ("Song (ft. Someone Else)", "song"),
        ("Song - Remastered 2011", "song"),
        ("Song (Live at Wembley) [Official Video]", "song"),
        ("Song (Radio Edit)", "song"),
        ("AC/DC", "acdc"),
        ("  Hello,   World!  ", "hello world"),
        ("Don't Stop Me Now", "dont stop me now"),
    ])
    def test_examples(self, raw, expected):
        assert normalize_title(raw) == expected

    def test_plain_parentheses_are_kept(self):
        assert normalize_title("(Sittin' On) The Dock of the Bay") == "sittin on the dock of the bay"

    @pytest.mark.parametrize("raw", [
        "Song (feat. X) - 2019 Remaster",
        "Title [Explicit] (Acoustic Version)",
        "Plain Title",
        "",
    ])
    def test_idempotent(self, raw):
        once = normalize_title(raw)
        assert normalize_title(once) == once


class TestBigramSimilarity:
    """Test bigram_similarity()"""

    def test_identical(self):
        assert bigram_similarity("night", "night") == 1.0

    def test_identical_short_strings(self):
        assert bigram_similarity("a", "a") == 1.0
        assert bigram_similarity("", "") == 1.0

    def test_different_short_strings(self):
        assert bigram_similarity("a", "b") == 0.0
        assert bigram_similarity("a", "abc") == 0.0

    def test_dice_coefficient(self):
        # night: ni ig gh ht / nacht: na ac ch ht -> 1 common of 8
        assert bigram_similarity("night", "nacht") == pytest.approx(0.25)

    def test_symmetric(self):
        assert bigram_similarity("hello", "help") == bigram_similarity("help", "hello")

    def test_no_overlap(self):
        assert bigram_similarity("abc", "xyz") == 0.0


class TestDurationScore:
    """Test duration_score() step boundaries"""

    @pytest.mark.parametrize("candidate_seconds, expected", [
        (200, 1.0),
        (202, 1.0),
        (198, 1.0),
        (203, 0.8),
        (205, 0.8),
        (206, 0.5),
        (210, 0.5),
        (211, 0.2),
        (230, 0.2),
        (231, 0.0),
        (100, 0.0),
    ])
    def test_boundaries(self, candidate_seconds, expected):
        assert duration_score(200_000, candidate_seconds) == expected

    def test_unknown_duration(self):
        assert duration_score(200_000, 0) == 0.5
        assert duration_score(200_000, None) == 0.5
        assert duration_score(0, 200) == 0.5


class TestMatchScore:
    """Test match_score()"""

    def test_perfect_match(self):
        assert match_score("Song A", "X", 200_000, "Song A", "X", 200) == pytest.approx(1.0)

    def test_weights(self):
        # title 1.0, artist 0.0, duration 0.5
        score = match_score("Song A", "Artist", 200_000, "Song A (Remastered)", "Zzz", 206)
        assert score == pytest.approx(0.45 + 0.20 * 0.5)

    def test_qualifiers_do_not_hurt(self):
        clean = match_score("Song", "Band", 200_000, "Song", "Band", 200)
        noisy = match_score("Song - 2011 Remaster", "Band", 200_000, "Song (feat. Guest)", "Band", 200)
        assert noisy == clean
