"""Engagement adjustment - rank candidates by freshness and past match success"""

import math

from studymatch.data.schema import CompatibilityScore, Member
from studymatch.matching.compatibility_scorer import round_half_up


MAX_FRESHNESS_BONUS = 15
FRESHNESS_DECAY = 0.3
MAX_SUCCESS_PENALTY = -15


def freshness_bonus(member: Member) -> int:
    """
    Bonus for members who have had few matches so far

    0 matches -> 15; decays as 15 * exp(-0.3 * total_matches)
    (1 -> 11, 2 -> 8, 3 -> 6, 5 -> 3).
    """
    total = member.total_matches or 0
    if total <= 0:
        return MAX_FRESHNESS_BONUS
    return round_half_up(MAX_FRESHNESS_BONUS * math.exp(-total * FRESHNESS_DECAY))


def success_penalty(member: Member) -> int:
    """
    Penalty (<= 0) for members whose past matches rarely went anywhere

    Args:
        member: Member with engagement statistics

    Returns:
        0 for new members, down to -15 for low success and low engagement
    """
    total = member.total_matches or 0
    if total <= 0:
        return 0

    success_rate = (member.successful_matches or 0) / total

    if success_rate >= 0.8:
        penalty = 0
    elif success_rate >= 0.5:
        penalty = -3
    elif success_rate >= 0.2:
        penalty = -6
    else:
        penalty = -10

    if (member.avg_messages_per_match or 0) < 3 and total >= 2:
        penalty -= 5

    return max(MAX_SUCCESS_PENALTY, penalty)


def adjust_score(score: CompatibilityScore, member_a: Member, member_b: Member) -> CompatibilityScore:
    """
    Attach an engagement-adjusted ranking total to a score

    The base ``total`` and breakdown are left untouched so threshold checks
    and analytics still see the pure compatibility score.
    """
    avg_freshness = (freshness_bonus(member_a) + freshness_bonus(member_b)) / 2
    avg_penalty = (success_penalty(member_a) + success_penalty(member_b)) / 2
    adjusted = max(0, round_half_up(score.total + avg_freshness + avg_penalty))
    return score.model_copy(update={"adjusted_total": adjusted})
