"""Pydantic schemas for Cellarplan data validation."""

import json
import uuid
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from cellarplan.config import HIGH_RATING_THRESHOLD
from cellarplan.constants import (
    PROTEIN_FAT,
    Confidence,
    FeatureRanges,
    Level,
    PlanStatus,
    ProfileSource,
    Protein,
    Readiness,
    Sauce,
    WineColor,
)
from cellarplan.power_formula import calculate_power
from cellarplan.utils import utc_now


# =======================
# WINE PROFILE
# =======================

class WineProfile(BaseModel):
    """Structure profile of a wine on the 0-10 scale.

    ``power`` is computed from body, tannin, oak and alcohol on every access,
    so it can never go stale relative to its inputs. A ``power`` key in the
    input is ignored.
    """

    body: float = Field(..., ge=0.0, le=10.0, description="Body weight (0=watery, 10=full)")
    tannin: float = Field(..., ge=0.0, le=10.0, description="Tannin grip")
    oak: float = Field(..., ge=0.0, le=10.0, description="Oak influence")
    acidity: float = Field(..., ge=0.0, le=10.0, description="Perceived acidity")
    sweetness: float = Field(0.0, ge=0.0, le=10.0, description="Residual sweetness")
    alcohol_est: float = Field(13.0, ge=FeatureRanges.MIN_ABV, le=FeatureRanges.MAX_ABV,
                               description="Estimated alcohol by volume (%)")
    style_tags: List[str] = Field(default_factory=list, max_length=8)
    confidence: Confidence = Confidence.LOW
    source: ProfileSource = ProfileSource.HEURISTIC

    @computed_field
    @property
    def power(self) -> float:
        return calculate_power(self.body, self.tannin, self.oak, self.alcohol_est)


# =======================
# COLLECTION
# =======================

class CollectionItem(BaseModel):
    """A bottle entry in the user's cellar (read-only for this engine)."""

    id: str = Field(..., description="Bottle identifier")
    wine_id: Optional[str] = None
    wine_name: str = ""
    producer: Optional[str] = None
    color: WineColor
    vintage: Optional[int] = Field(None, ge=FeatureRanges.MIN_VINTAGE, le=FeatureRanges.MAX_VINTAGE)
    region: Optional[str] = None
    country: Optional[str] = None
    grapes: List[str] = Field(default_factory=list)
    style: Optional[str] = Field(None, description="Regional style, e.g. 'Gran Reserva'")
    alcohol_abv: Optional[float] = Field(None, ge=FeatureRanges.MIN_ABV, le=FeatureRanges.MAX_ABV)
    quantity: int = Field(0, ge=0)
    rating: Optional[float] = Field(None, ge=FeatureRanges.MIN_COMMUNITY_RATING,
                                    le=FeatureRanges.MAX_COMMUNITY_RATING)
    readiness: Optional[Readiness] = None
    wine_profile: Optional[Dict[str, Any]] = Field(None, description="Previously computed profile, as stored")
    wine_profile_updated_at: Optional[datetime] = None

    @field_validator('color', mode='before')
    @classmethod
    def _normalize_color(cls, value):
        return WineColor.normalize(value)

    @field_validator('readiness', mode='before')
    @classmethod
    def _unknown_readiness_is_none(cls, value):
        if value is None or isinstance(value, Readiness):
            return value
        label = str(value).strip().upper().replace(' ', '_').replace('-', '_')
        try:
            return Readiness(label)
        except ValueError:
            return None

    @field_validator('grapes', mode='before')
    @classmethod
    def _grapes_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [g.strip() for g in value.split(',') if g.strip()]
        return value


class CollectionFilters(BaseModel):
    """Hard filters applied before scoring. quantity > 0 is always implied."""

    color: Optional[WineColor] = None
    reds_only: bool = False
    min_rating: Optional[float] = Field(None, ge=FeatureRanges.MIN_COMMUNITY_RATING,
                                        le=FeatureRanges.MAX_COMMUNITY_RATING)
    high_rating_only: bool = False

    @field_validator('color', mode='before')
    @classmethod
    def _normalize_color(cls, value):
        return None if value is None else WineColor.normalize(value)

    @property
    def effective_color(self) -> Optional[WineColor]:
        return WineColor.RED if self.reds_only else self.color

    @property
    def effective_min_rating(self) -> Optional[float]:
        thresholds = [t for t in (self.min_rating, HIGH_RATING_THRESHOLD if self.high_rating_only else None)
                      if t is not None]
        return max(thresholds) if thresholds else None

    def matches(self, item: CollectionItem) -> bool:
        if item.quantity <= 0:
            return False
        color = self.effective_color
        if color is not None and item.color != color:
            return False
        min_rating = self.effective_min_rating
        if min_rating is not None and (item.rating or 0.0) < min_rating:
            return False
        return True


# =======================
# FOOD
# =======================

class FoodProfile(BaseModel):
    """What is being served. Fat defaults to the level implied by the protein."""

    protein: Protein = Protein.NONE
    fat: Optional[Level] = None
    sauce: Sauce = Sauce.NONE
    spice: Level = Level.LOW
    smoke: Level = Level.LOW

    @model_validator(mode='after')
    def _derive_fat(self) -> 'FoodProfile':
        if self.fat is None:
            self.fat = PROTEIN_FAT[self.protein]
        return self


# =======================
# LINEUP
# =======================

class LineupSlot(BaseModel):
    """One pour in the lineup: item reference, display snapshot, serving label."""

    position: int = Field(..., ge=1, description="1-based serving position")
    item_id: str
    wine_id: Optional[str] = None
    wine_name: str = ""
    producer: Optional[str] = None
    vintage: Optional[int] = None
    color: Optional[WineColor] = None
    rating: Optional[float] = None
    label: str = ""
    locked: bool = False

    # Completion data (filled when the plan is completed)
    opened: bool = False
    opened_quantity: int = Field(0, ge=0)
    user_rating: Optional[float] = Field(None, ge=FeatureRanges.MIN_USER_RATING,
                                         le=FeatureRanges.MAX_USER_RATING)
    notes: Optional[str] = None

    @classmethod
    def from_item(cls, item: CollectionItem, position: int, label: str, locked: bool = False) -> 'LineupSlot':
        return cls(
            position=position,
            item_id=item.id,
            wine_id=item.wine_id,
            wine_name=item.wine_name,
            producer=item.producer,
            vintage=item.vintage,
            color=item.color,
            rating=item.rating,
            label=label,
            locked=locked,
        )


class CandidateScore(BaseModel):
    """Score breakdown for one selected candidate."""

    item_id: str
    readiness: int
    pairing: int
    jitter: float
    total: float
    power: float
    heavy: bool


class Lineup(BaseModel):
    """Composer output. An empty lineup means nothing qualifies; it is not an error."""

    EMPTY_REASON: ClassVar[str] = "nothing qualifies"

    slots: List[LineupSlot] = Field(default_factory=list)
    scores: List[CandidateScore] = Field(default_factory=list)
    target_count: int = 0
    candidate_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.slots

    @property
    def reason(self) -> Optional[str]:
        return self.EMPTY_REASON if self.is_empty else None

    def __len__(self) -> int:
        return len(self.slots)


# =======================
# COMPLETION
# =======================

class SlotOutcome(BaseModel):
    """What happened to one slot, reported by the user at the end of the evening."""

    position: int = Field(..., ge=1)
    opened: bool = True
    opened_quantity: int = Field(1, ge=1, description="Bottles opened (at least one)")
    rating: Optional[float] = Field(None, ge=FeatureRanges.MIN_USER_RATING, le=FeatureRanges.MAX_USER_RATING)
    notes: Optional[str] = None


class HistoryRecord(BaseModel):
    """Consumption history entry written once per opened slot."""

    owner_id: str
    item_id: str
    wine_id: Optional[str] = None
    quantity: int = Field(..., ge=1)
    rating: Optional[float] = None
    notes: Optional[str] = None
    opened_at: datetime
    plan_id: Optional[str] = None


# =======================
# EVENING PLAN
# =======================

class EveningPlan(BaseModel):
    """Persisted, resumable wrapper around a lineup."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    status: PlanStatus = PlanStatus.ACTIVE
    plan_name: Optional[str] = None
    occasion: Optional[str] = None
    group_size: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    queue: List[LineupSlot] = Field(default_factory=list)
    now_playing_index: int = Field(0, ge=0)
    version: int = Field(1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    total_bottles_opened: int = Field(0, ge=0)
    wines_opened: int = Field(0, ge=0)
    average_rating: Optional[float] = None

    @model_validator(mode='after')
    def _check_queue_consistency(self) -> 'EveningPlan':
        positions = [slot.position for slot in self.queue]
        if positions != list(range(1, len(positions) + 1)):
            raise ValueError(f"queue positions must be contiguous from 1, got {positions}")
        upper = max(len(self.queue) - 1, 0)
        if self.now_playing_index > upper:
            raise ValueError(f"now_playing_index {self.now_playing_index} outside [0, {upper}]")
        return self

    @property
    def is_active(self) -> bool:
        return self.status is PlanStatus.ACTIVE

    @property
    def now_playing(self) -> Optional[LineupSlot]:
        if not self.queue:
            return None
        return self.queue[self.now_playing_index]

    def queue_to_json(self) -> str:
        """Serialize the queue as an ordered JSON list of slot records."""
        return json.dumps([slot.model_dump(mode='json') for slot in self.queue], ensure_ascii=False)

    def to_record(self) -> Dict[str, Any]:
        """Flat row for persistence (queue and settings as JSON text)."""
        record = self.model_dump(mode='json', exclude={'queue', 'settings'})
        record['queue'] = self.queue_to_json()
        record['settings'] = json.dumps(self.settings, ensure_ascii=False, sort_keys=True)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'EveningPlan':
        """Inverse of to_record; also accepts already-decoded JSON columns."""
        data = dict(record)
        for key in ('queue', 'settings'):
            if isinstance(data.get(key), (str, bytes)):
                data[key] = json.loads(data[key])
        if data.get('settings') is None:
            data['settings'] = {}
        if data.get('average_rating') is not None:
            data['average_rating'] = float(data['average_rating'])
        return cls.model_validate(data)
