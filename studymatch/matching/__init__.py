"""Matching engine modules"""

from studymatch.matching.compatibility_scorer import CompatibilityScorer
from studymatch.matching.eligibility import EligibilityGate
from studymatch.matching.match_assigner import MatchAssigner

__all__ = ["CompatibilityScorer", "EligibilityGate", "MatchAssigner"]
