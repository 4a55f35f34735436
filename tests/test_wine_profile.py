"""
Tests for the WineProfile estimator.

Covers both branches (stored vs heuristic), freshness and consistency checks,
and the range guarantees of the heuristic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cellarplan.constants import Confidence, ProfileSource
from cellarplan.power_formula import is_heavy
from cellarplan.wine_profile import estimate_profile, heuristic_profile, stored_profile
from conftest import LIGHT, make_item, profile

UPDATED = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestStoredBranch:
    """Stored profiles are returned verbatim when they can be trusted."""

    def test_valid_stored_profile_used(self):
        item = make_item("a", wine_profile=profile(**LIGHT))
        result = estimate_profile(item)
        assert result.source is ProfileSource.AI
        assert result.body == 3.0
        assert result.power == 2.7

    def test_consistent_stored_power_accepted(self):
        item = make_item("a", wine_profile=profile(**LIGHT, power=2.7))
        assert stored_profile(item) is not None

    def test_inconsistent_stored_power_falls_back(self):
        """A power value that disagrees with its own inputs is not trusted."""
        item = make_item("a", wine_profile=profile(**LIGHT, power=9.0))
        assert stored_profile(item) is None
        assert estimate_profile(item).source is ProfileSource.HEURISTIC

    def test_out_of_range_stored_profile_falls_back(self):
        item = make_item("a", wine_profile=profile(body=12.0, tannin=5.0, oak=5.0))
        assert estimate_profile(item).source is ProfileSource.HEURISTIC

    def test_incomplete_stored_profile_falls_back(self):
        item = make_item("a", wine_profile={'body': 5.0})
        assert estimate_profile(item).source is ProfileSource.HEURISTIC

    def test_null_alcohol_uses_bottle_abv(self):
        """A stored profile without an ABV estimate is still trusted."""
        stored = profile(body=8.0, tannin=7.0, oak=5.0, alcohol_est=None, power=7.0)
        result = estimate_profile(make_item("a", wine_profile=stored, alcohol_abv=14.5))
        assert result.source is ProfileSource.AI
        assert (result.body, result.tannin) == (8.0, 7.0)
        assert result.alcohol_est == 14.5

    def test_null_alcohol_without_bottle_abv_uses_color_baseline(self):
        stored = profile(body=3.0, tannin=1.0, oak=1.0, alcohol_est=None)
        result = estimate_profile(make_item("a", color="white", wine_profile=stored))
        assert result.source is ProfileSource.AI
        assert result.alcohol_est == 12.5

    def test_long_tag_list_is_truncated(self):
        tags = [f"tag-{i}" for i in range(9)]
        result = estimate_profile(make_item("a", wine_profile=profile(body=8.0, tannin=7.0, oak=5.0, style_tags=tags)))
        assert result.source is ProfileSource.AI
        assert result.body == 8.0
        assert result.style_tags == tags[:8]

    def test_fresh_profile_used(self):
        item = make_item("a", wine_profile=profile(**LIGHT), wine_profile_updated_at=UPDATED)
        result = estimate_profile(item, as_of=UPDATED + timedelta(days=29))
        assert result.source is ProfileSource.AI

    def test_stale_profile_re_estimated(self):
        """Profiles older than 30 days are re-estimated."""
        item = make_item("a", wine_profile=profile(**LIGHT), wine_profile_updated_at=UPDATED)
        result = estimate_profile(item, as_of=UPDATED + timedelta(days=31))
        assert result.source is ProfileSource.HEURISTIC

    def test_naive_timestamps_do_not_raise(self):
        item = make_item("a", wine_profile=profile(**LIGHT), wine_profile_updated_at=datetime(2026, 1, 1))
        result = estimate_profile(item, as_of=UPDATED + timedelta(days=1))
        assert result.source is ProfileSource.AI


class TestHeuristicBranch:
    """Heuristic estimate from color, ABV, region, grapes and style."""

    def test_plain_red_baseline(self):
        result = heuristic_profile(make_item("a", color="red"))
        assert (result.body, result.tannin, result.acidity, result.oak) == (6.0, 6.0, 5.0, 4.0)
        assert result.alcohol_est == 13.5
        assert result.confidence is Confidence.LOW
        assert result.source is ProfileSource.HEURISTIC

    def test_napa_cabernet_is_big_and_heavy(self):
        """Region and grape nudges stack; scalars are clamped at 10."""
        item = make_item("a", color="red", alcohol_abv=14.5, region="Napa Valley",
                         grapes=["Cabernet Sauvignon"])
        result = heuristic_profile(item)
        assert result.body == 10.0
        assert result.tannin == 10.0
        assert result.oak == 6.0
        assert result.confidence is Confidence.MED
        assert is_heavy(result)
        assert "structured" in result.style_tags

    def test_low_alcohol_riesling_is_light(self):
        item = make_item("a", color="white", alcohol_abv=8.5, region="Mosel", grapes=["Riesling"])
        result = heuristic_profile(item)
        assert result.body == 0.0
        assert result.acidity == 9.0
        assert result.oak == 1.0
        assert result.alcohol_est == 8.5
        assert not is_heavy(result)

    def test_gran_reserva_style_adds_oak(self):
        plain = heuristic_profile(make_item("a", color="red", region="Rioja"))
        reserva = heuristic_profile(make_item("b", color="red", region="Rioja", style="Gran Reserva"))
        assert reserva.oak == plain.oak + 2
        assert reserva.body == plain.body + 2

    def test_dessert_style_is_sweet(self):
        result = heuristic_profile(make_item("a", color="white", style="Late Harvest"))
        assert result.sweetness >= 6.0
        assert "sweet" in result.style_tags

    def test_style_keywords_match_whole_words(self):
        """Valpolicella is not an ice wine, and a Ripasso is dry."""
        result = heuristic_profile(make_item("a", color="red", region="Veneto", style="Valpolicella Ripasso"))
        assert result.sweetness == 0.0
        assert "sweet" not in result.style_tags

    @pytest.mark.parametrize("style", ["Oporto Selection", "Reserved Lot"])
    def test_partial_word_styles_ignored(self, style):
        plain = heuristic_profile(make_item("a", color="red"))
        result = heuristic_profile(make_item("b", color="red", style=style))
        assert (result.body, result.oak, result.sweetness) == (plain.body, plain.oak, plain.sweetness)

    def test_ice_wine_is_sweet(self):
        result = heuristic_profile(make_item("a", color="white", style="Ice Wine"))
        assert result.sweetness == 7.0
        assert "sweet" in result.style_tags

    def test_merlot_is_smooth(self):
        result = heuristic_profile(make_item("a", color="red", grapes=["Merlot"]))
        assert (result.body, result.tannin, result.oak) == (6.0, 6.0, 6.0)
        assert "approachable" in result.style_tags

    def test_sparkling_is_lightest(self):
        sparkling = heuristic_profile(make_item("a", color="sparkling"))
        red = heuristic_profile(make_item("b", color="red"))
        assert sparkling.power < red.power

    @pytest.mark.parametrize("color", ["red", "white", "rose", "sparkling"])
    @pytest.mark.parametrize("abv", [None, 5.0, 12.0, 16.0, 25.0])
    def test_scalars_always_in_range(self, color, abv):
        item = make_item("a", color=color, alcohol_abv=abv, region="Barossa", grapes=["Shiraz"],
                         style="Reserve Port")
        result = heuristic_profile(item)
        for value in (result.body, result.tannin, result.acidity, result.oak, result.sweetness):
            assert 0.0 <= value <= 10.0
        assert 0.0 <= result.power <= 10.0
        assert len(result.style_tags) <= 8


class TestEstimatorProperties:
    """Pure-function properties."""

    def test_idempotent(self):
        """Same item, same profile, every time."""
        item = make_item("a", color="red", alcohol_abv=13.0, region="Bordeaux", grapes="Merlot")
        assert estimate_profile(item) == estimate_profile(item)

    def test_does_not_mutate_item(self):
        item = make_item("a", wine_profile=profile(**LIGHT, power=9.0))
        before = item.model_dump()
        estimate_profile(item)
        assert item.model_dump() == before
