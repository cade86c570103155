"""Data schema definitions for members, pairings and their artifacts

Field names are Pythonic; aliases match the column names of the backing
Supabase tables so rows can be validated directly with ``model_validate``
and written back with ``model_dump(by_alias=True)``.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Member(BaseModel):
    """A student in the matching pool (row of the ``users`` table)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    major: Optional[str] = None

    # Matching inputs
    affiliation: Optional[str] = Field(None, alias="university")
    topics: Optional[list[Optional[str]]] = Field(None, alias="preferred_subjects")
    availability: Optional[dict[str, Optional[str]]] = None  # day -> slot label
    interaction_style: Optional[str] = Field(None, alias="study_style")
    goal: Optional[str] = Field(None, alias="study_goals")
    seniority: Optional[Union[int, str]] = Field(None, alias="year")

    # Cycle bookkeeping
    last_cycle_at: Optional[datetime] = Field(None, alias="last_auto_match_cycle")
    intake_complete: Optional[bool] = Field(False, alias="onboarding_completed")
    push_token: Optional[str] = None

    # Engagement statistics (maintained outside the cycle)
    total_matches: Optional[int] = None
    successful_matches: Optional[int] = None
    avg_messages_per_match: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.full_name or "a study buddy"


class ScoreBreakdown(BaseModel):
    """Per-factor contributions to a compatibility score"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    affiliation: int = 0
    topic_overlap: int = 0
    availability_overlap: int = 0
    style_match: int = 0
    goal_match: int = 0
    seniority_proximity: int = 0

    def values(self) -> list[int]:
        return list(self.model_dump().values())


class CompatibilityScore(BaseModel):
    """Ephemeral 0-100 score; ``total`` is always the sum of the breakdown"""

    total: int
    breakdown: ScoreBreakdown
    # Ranking key when engagement-adjusted ranking is enabled
    adjusted_total: Optional[int] = None

    @model_validator(mode="after")
    def _total_matches_breakdown(self):
        if self.total != sum(self.breakdown.values()):
            raise ValueError(
                f"total {self.total} does not equal breakdown sum {sum(self.breakdown.values())}"
            )
        return self

    @classmethod
    def from_breakdown(cls, breakdown: ScoreBreakdown) -> "CompatibilityScore":
        return cls(total=sum(breakdown.values()), breakdown=breakdown)

    @property
    def ranking_total(self) -> int:
        return self.adjusted_total if self.adjusted_total is not None else self.total


class PairingKind(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class PairingStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DISSOLVED = "dissolved"


class Pairing(BaseModel):
    """A persisted match between two members (row of ``matches``)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    member_a: str = Field(alias="user1_id")
    member_b: str = Field(alias="user2_id")
    kind: PairingKind = Field(PairingKind.AUTO, alias="match_type")
    status: PairingStatus = PairingStatus.ACTIVE
    created_at: Optional[datetime] = None
    opening_message_sent: bool = Field(False, alias="ai_message_sent")

    @property
    def pair_key(self) -> frozenset[str]:
        return frozenset((self.member_a, self.member_b))


class PairingCandidate(BaseModel):
    """A pair chosen by the assigner but not yet written"""

    member_a: Member
    member_b: Member
    score: CompatibilityScore

    @property
    def pair_key(self) -> frozenset[str]:
        return frozenset((self.member_a.id, self.member_b.id))


class PairingAnalytics(BaseModel):
    """Score record written alongside a pairing (row of ``match_analytics``)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pairing_id: str = Field(alias="match_id")
    score: int = Field(alias="compatibility_score")
    breakdown: dict[str, int] = Field(default_factory=dict, alias="score_breakdown")


class Channel(BaseModel):
    """Conversation container for a pairing (row of ``conversations``)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    pairing_id: str = Field(alias="match_id")


class OpeningMessage(BaseModel):
    """First message inserted into a new pairing's channel"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    channel_id: str = Field(alias="conversation_id")
    author_id: str = Field(alias="sender_id")
    content: str
    is_generated: bool = Field(True, alias="is_ai_generated")
    source_suggestion_id: Optional[str] = Field(None, alias="suggested_message_id")


class CycleSummary(BaseModel):
    """Result of one auto-match cycle"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    matches_created: int = 0
    errors: list[str] = Field(default_factory=list)
    message: Optional[str] = None
    state: str = "DONE"
