"""
Tests for Pydantic schemas.

Validates that data models enforce correct constraints.
"""

import pytest
from pydantic import ValidationError

from cellarplan.constants import Level, PlanStatus, Protein, Readiness, WineColor
from cellarplan.schema import (
    CollectionFilters,
    CollectionItem,
    EveningPlan,
    FoodProfile,
    Lineup,
    LineupSlot,
    SlotOutcome,
    WineProfile,
)
from conftest import make_item


class TestWineProfile:
    """Test WineProfile validation and the computed power."""

    def test_valid_profile(self):
        """Valid scalars should pass validation."""
        profile = WineProfile(body=7.0, tannin=6.0, oak=5.0, acidity=6.0, alcohol_est=14.0)
        assert profile.body == 7.0
        assert profile.sweetness == 0.0

    def test_power_is_computed(self):
        """Power follows the weighted formula."""
        profile = WineProfile(body=3.0, tannin=1.0, oak=1.0, acidity=8.0, alcohol_est=12.0)
        # 0.35*3 + 0.30*1 + 0.15*1 + 0.20*6
        assert profile.power == 2.7

    def test_power_input_is_ignored(self):
        """A stale power value in the input never overrides the formula."""
        profile = WineProfile.model_validate(
            {'body': 3.0, 'tannin': 1.0, 'oak': 1.0, 'acidity': 8.0, 'alcohol_est': 12.0, 'power': 9.9}
        )
        assert profile.power == 2.7

    def test_scalar_above_range_raises_error(self):
        """Scalars are bounded to 0-10."""
        with pytest.raises(ValidationError) as exc_info:
            WineProfile(body=11.0, tannin=5.0, oak=5.0, acidity=5.0)
        assert "body" in str(exc_info.value)

    def test_too_many_style_tags(self):
        """At most 8 style tags."""
        with pytest.raises(ValidationError):
            WineProfile(body=5.0, tannin=5.0, oak=5.0, acidity=5.0, style_tags=[str(i) for i in range(9)])


class TestCollectionItem:
    """Test CollectionItem normalization."""

    def test_color_display_spelling(self):
        """'Rosé' and capitalized colors normalize to the enum."""
        assert make_item("a", color="Rosé").color is WineColor.ROSE
        assert make_item("b", color="Red").color is WineColor.RED

    def test_unknown_color_raises_error(self):
        with pytest.raises(ValidationError):
            make_item("a", color="orange")

    def test_unknown_readiness_is_none(self):
        """Unrecognized readiness labels are treated as unknown."""
        assert make_item("a", readiness="unknown").readiness is None
        assert make_item("b", readiness="peak soon").readiness is Readiness.PEAK_SOON

    def test_grapes_from_comma_string(self):
        item = make_item("a", grapes="Grenache, Syrah")
        assert item.grapes == ["Grenache", "Syrah"]

    def test_negative_quantity_raises_error(self):
        with pytest.raises(ValidationError):
            make_item("a", quantity=-1)


class TestCollectionFilters:
    """Test hard filters applied before scoring."""

    def test_quantity_always_required(self):
        """Zero-quantity items never match, even with no filters."""
        assert not CollectionFilters().matches(make_item("a", quantity=0))
        assert CollectionFilters().matches(make_item("b", quantity=1))

    def test_reds_only_overrides_color(self):
        filters = CollectionFilters(color="white", reds_only=True)
        assert filters.effective_color is WineColor.RED
        assert filters.matches(make_item("a", color="red"))
        assert not filters.matches(make_item("b", color="white"))

    def test_high_rating_only(self):
        """High-rating toggle implies a 4.2 floor."""
        filters = CollectionFilters(high_rating_only=True)
        assert filters.effective_min_rating == 4.2
        assert filters.matches(make_item("a", rating=4.5))
        assert not filters.matches(make_item("b", rating=4.0))
        assert not filters.matches(make_item("c"))

    def test_stricter_threshold_wins(self):
        assert CollectionFilters(min_rating=4.6, high_rating_only=True).effective_min_rating == 4.6
        assert CollectionFilters(min_rating=3.0, high_rating_only=True).effective_min_rating == 4.2


class TestFoodProfile:
    """Test FoodProfile defaults."""

    def test_fat_derived_from_protein(self):
        assert FoodProfile(protein="beef").fat is Level.HIGH
        assert FoodProfile(protein="chicken").fat is Level.MED
        assert FoodProfile(protein="fish").fat is Level.LOW

    def test_explicit_fat_kept(self):
        assert FoodProfile(protein="beef", fat="low").fat is Level.LOW

    def test_defaults(self):
        food = FoodProfile()
        assert food.protein is Protein.NONE
        assert food.fat is Level.LOW


class TestLineupAndPlan:
    """Test Lineup, SlotOutcome and EveningPlan models."""

    def _slots(self, n):
        return [LineupSlot(position=i, item_id=f"item-{i}", label="Mid") for i in range(1, n + 1)]

    def test_empty_lineup_reason(self):
        lineup = Lineup()
        assert lineup.is_empty
        assert lineup.reason == "nothing qualifies"
        assert len(lineup) == 0

    def test_non_empty_lineup_has_no_reason(self):
        lineup = Lineup(slots=self._slots(2), target_count=2)
        assert not lineup.is_empty
        assert lineup.reason is None

    def test_outcome_quantity_at_least_one(self):
        with pytest.raises(ValidationError):
            SlotOutcome(position=1, opened_quantity=0)

    def test_outcome_rating_range(self):
        with pytest.raises(ValidationError):
            SlotOutcome(position=1, rating=5.5)

    def test_plan_rejects_gapped_positions(self):
        slots = self._slots(3)
        slots[2] = slots[2].model_copy(update={'position': 4})
        with pytest.raises(ValidationError):
            EveningPlan(owner_id="o", queue=slots)

    def test_plan_rejects_cursor_out_of_range(self):
        with pytest.raises(ValidationError):
            EveningPlan(owner_id="o", queue=self._slots(2), now_playing_index=2)

    def test_now_playing(self):
        plan = EveningPlan(owner_id="o", queue=self._slots(3), now_playing_index=1)
        assert plan.now_playing.item_id == "item-2"
        assert plan.is_active
        assert plan.status is PlanStatus.ACTIVE

    def test_record_round_trip(self):
        """to_record/from_record preserves the queue order and every field."""
        plan = EveningPlan(
            owner_id="o",
            queue=self._slots(5),
            now_playing_index=3,
            settings={'group_size': 'large', 'reds_only': True},
            occasion="Birthday",
        )
        record = plan.to_record()
        assert isinstance(record['queue'], str)
        restored = EveningPlan.from_record(record)
        assert restored == plan
        assert [s.item_id for s in restored.queue] == [f"item-{i}" for i in range(1, 6)]

    def test_collection_item_accepts_stored_profile(self):
        item = CollectionItem(id="x", color="red", wine_profile={'body': 5})
        assert item.wine_profile == {'body': 5}
