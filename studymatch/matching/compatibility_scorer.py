"""Compatibility Scorer - Compute pairwise compatibility between study-pool members"""

import math
from typing import Iterable, Optional

from loguru import logger

from studymatch.data.schema import CompatibilityScore, Member, ScoreBreakdown


def round_half_up(value: float) -> int:
    """Round to nearest int with .5 going up (not banker's rounding)"""
    return int(math.floor(value + 0.5))


def normalize_label(value: Optional[str]) -> Optional[str]:
    """Lowercase, trim and unify separators: 'With-Music' -> 'with_music'"""
    if value is None:
        return None
    label = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    return label or None


def normalize_topics(topics: Optional[Iterable[Optional[str]]]) -> list[str]:
    """Lowercase/trim topics, dropping blanks and duplicates (first occurrence wins)"""
    seen: dict[str, None] = {}
    for topic in topics or []:
        if topic is None:
            continue
        key = str(topic).strip().lower()
        if key:
            seen.setdefault(key, None)
    return list(seen)


def shared_topics(member_a: Member, member_b: Member) -> list[str]:
    """
    Topics both members list, in member_a's order and member_a's spelling

    Args:
        member_a: First member (display spelling is taken from here)
        member_b: Second member

    Returns:
        List of shared topic strings (trimmed, original casing)
    """
    other = set(normalize_topics(member_b.topics))
    shared = []
    seen = set()
    for topic in member_a.topics or []:
        if topic is None:
            continue
        key = str(topic).strip().lower()
        if key and key in other and key not in seen:
            seen.add(key)
            shared.append(str(topic).strip())
    return shared


class CompatibilityScorer:
    """
    Compute compatibility scores between two members

    Scoring dimensions (points, sum to 100):
    - Affiliation match: 20
    - Topic overlap: 30
    - Availability overlap: 20
    - Interaction style: 15
    - Goal match: 10
    - Seniority proximity: 5

    Every factor is a symmetric function of the two members, so
    ``score(a, b).total == score(b, a).total``. Missing fields degrade to
    neutral or zero contributions; the scorer never raises.
    """

    AFFILIATION_POINTS = 20
    TOPIC_POINTS = 30
    AVAILABILITY_POINTS = 20

    AVAILABILITY_NEUTRAL = 10
    STYLE_NEUTRAL = 7
    GOAL_NEUTRAL = 5
    SENIORITY_NEUTRAL = 2

    DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    EMPTY_SLOTS = {"", "none"}

    # Unordered pairs that work well together without being identical
    COMPATIBLE_STYLES = [
        frozenset({"quiet", "with_music"}),
        frozenset({"group_discussion", "teach_each_other"}),
    ]
    COMPATIBLE_GOALS = [frozenset({"ace_exams", "understand_concepts"})]
    ANTAGONISTIC_GOALS = [frozenset({"ace_exams", "just_pass"})]

    SENIORITY_SCALE = ["freshman", "sophomore", "junior", "senior", "graduate"]
    SENIORITY_ALIASES = {
        "1": "freshman", "first": "freshman", "first_year": "freshman",
        "2": "sophomore", "second": "sophomore", "second_year": "sophomore",
        "3": "junior", "third": "junior", "third_year": "junior",
        "4": "senior", "fourth": "senior", "fourth_year": "senior",
        "grad": "graduate", "graduate_student": "graduate", "masters": "graduate", "phd": "graduate",
    }
    SENIORITY_POINTS = {0: 5, 1: 4, 2: 2}

    def score(self, member_a: Member, member_b: Member) -> CompatibilityScore:
        """
        Compute the full compatibility score

        Args:
            member_a: First member
            member_b: Second member

        Returns:
            CompatibilityScore with total and per-factor breakdown
        """
        breakdown = ScoreBreakdown(
            affiliation=self.score_affiliation(member_a, member_b),
            topic_overlap=self.score_topic_overlap(member_a, member_b),
            availability_overlap=self.score_availability_overlap(member_a, member_b),
            style_match=self.score_style_match(member_a, member_b),
            goal_match=self.score_goal_match(member_a, member_b),
            seniority_proximity=self.score_seniority_proximity(member_a, member_b),
        )
        result = CompatibilityScore.from_breakdown(breakdown)

        logger.debug(f"Score {member_a.id} <-> {member_b.id}: {result.total} {breakdown.model_dump()}")

        return result

    def score_affiliation(self, member_a: Member, member_b: Member) -> int:
        """Exact case-insensitive affiliation match -> 20, otherwise 0"""
        a = (member_a.affiliation or "").strip().lower()
        b = (member_b.affiliation or "").strip().lower()
        if not a or not b:
            return 0
        return self.AFFILIATION_POINTS if a == b else 0

    def score_topic_overlap(self, member_a: Member, member_b: Member) -> int:
        """Shared topics relative to the shorter list, scaled to 30"""
        topics_a = normalize_topics(member_a.topics)
        topics_b = normalize_topics(member_b.topics)

        if not topics_a or not topics_b:
            return 0

        shared = len(set(topics_a) & set(topics_b))
        if shared == 0:
            return 0

        ratio = shared / min(len(topics_a), len(topics_b))
        return round_half_up(ratio * self.TOPIC_POINTS)

    def score_availability_overlap(self, member_a: Member, member_b: Member) -> int:
        """
        Days where both members chose the same slot, scaled to 20

        Unknown availability is not incompatibility: if either side has no
        data the neutral default (10) is returned.
        """
        slots_a = self._weekly_slots(member_a.availability)
        slots_b = self._weekly_slots(member_b.availability)

        if not slots_a or not slots_b:
            return self.AVAILABILITY_NEUTRAL

        total_slots = len(slots_a) + len(slots_b)
        overlapping = sum(
            1 for day in self.DAYS
            if day in slots_a and slots_a.get(day) == slots_b.get(day)
        )

        ratio = min(overlapping / max(1, total_slots / 2), 1.0)
        return round_half_up(ratio * self.AVAILABILITY_POINTS)

    def score_style_match(self, member_a: Member, member_b: Member) -> int:
        """Same style 15, compatible pair 10, unset 7, otherwise 5"""
        style_a = normalize_label(member_a.interaction_style)
        style_b = normalize_label(member_b.interaction_style)

        if not style_a or not style_b:
            return self.STYLE_NEUTRAL
        if style_a == style_b:
            return 15
        if frozenset({style_a, style_b}) in self.COMPATIBLE_STYLES:
            return 10
        return 5

    def score_goal_match(self, member_a: Member, member_b: Member) -> int:
        """Same goal 10, compatible 8, antagonistic 2, otherwise/unset 5"""
        goal_a = normalize_label(member_a.goal)
        goal_b = normalize_label(member_b.goal)

        if not goal_a or not goal_b:
            return self.GOAL_NEUTRAL
        if goal_a == goal_b:
            return 10

        pair = frozenset({goal_a, goal_b})
        if pair in self.COMPATIBLE_GOALS:
            return 8
        if pair in self.ANTAGONISTIC_GOALS:
            return 2
        return self.GOAL_NEUTRAL

    def score_seniority_proximity(self, member_a: Member, member_b: Member) -> int:
        """Distance on the seniority scale: 0 -> 5, 1 -> 4, 2 -> 2, further or unparseable -> 1"""
        if self._is_blank(member_a.seniority) or self._is_blank(member_b.seniority):
            return self.SENIORITY_NEUTRAL

        rank_a = self.seniority_rank(member_a.seniority)
        rank_b = self.seniority_rank(member_b.seniority)
        if rank_a is None or rank_b is None:
            return 1

        return self.SENIORITY_POINTS.get(abs(rank_a - rank_b), 1)

    @classmethod
    def seniority_rank(cls, value) -> Optional[int]:
        """Position of a seniority value on the ordered scale, or None"""
        label = normalize_label(str(value))
        if label is None:
            return None
        label = cls.SENIORITY_ALIASES.get(label, label)
        if label in cls.SENIORITY_SCALE:
            return cls.SENIORITY_SCALE.index(label)
        if label.isdigit() and int(label) >= len(cls.SENIORITY_SCALE):
            return cls.SENIORITY_SCALE.index("graduate")
        return None

    def _weekly_slots(self, availability: Optional[dict]) -> dict[str, str]:
        """Normalized day -> slot map with empty/'none' slots removed"""
        if not availability:
            return {}
        slots = {}
        for day, slot in availability.items():
            day_key = str(day).strip().lower()
            if day_key not in self.DAYS or slot is None:
                continue
            slot_key = str(slot).strip().lower()
            if slot_key not in self.EMPTY_SLOTS:
                slots[day_key] = slot_key
        return slots

    @staticmethod
    def _is_blank(value) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())
