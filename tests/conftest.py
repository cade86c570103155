"""Shared fixtures: member factory and in-memory stores"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from studymatch.data.schema import Member
from studymatch.storage.memory_store import InMemoryDatabase


NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def build_member(member_id: str, **overrides) -> Member:
    """A complete, eligible State University member; override any field"""
    fields = dict(
        id=member_id,
        full_name=f"Student {member_id}",
        affiliation="State University",
        major="Computer Science",
        topics=["Data Structures", "Algorithms"],
        interaction_style="quiet",
        goal="ace_exams",
        seniority="junior",
        intake_complete=True,
    )
    fields.update(overrides)
    return Member(**fields)


@pytest.fixture
def make_member():
    return build_member


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    return InMemoryDatabase()
