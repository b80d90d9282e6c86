"""
Shared fixtures for the test suite.

Environment is pinned BEFORE any project import so that ``app.settings``
never picks up real credentials or a developer's database.
"""

import os
import tempfile
from datetime import datetime, timedelta

_TMP = tempfile.mkdtemp(prefix="role-dna-tests-")
os.environ["SQLITE_PATH"] = os.path.join(_TMP, "test.sqlite3")
os.environ["ENV"] = "development"
os.environ["OPENAI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["IDENTITY_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402

from infra.db.session import Base, engine  # noqa: E402
import infra.db.models  # noqa: E402,F401


SALES_DEFINITION = {
    "role_title": "Account Executive",
    "job_summary": "Own the full sales cycle for mid-market accounts.",
    "goals": "Close new mid-market revenue",
    "stakeholders": "Prospects, Sales Engineering",
    "decision_horizon": "Quarterly",
    "tools": "Salesforce, Gong",
    "kpis": "Quota attainment, pipeline coverage",
    "constraints": "Small team",
    "cognitive_type": "Analytical",
    "team_topology": "Cross-functional",
    "cultural_tone": "Scrappy",
}

SALES_FLAGS = {
    "role_family": "Sales",
    "seniority": "Manager",
    "is_startup_context": True,
    "is_people_management": False,
}


@pytest.fixture(autouse=True)
def fresh_db():
    """Give every test an empty schema."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


class FakeGeneration:
    """In-memory stand-in for the text-generation service."""

    def __init__(self, extraction=None, scaffold=None, scores=None, error=None, scaffold_error=None):
        self.extraction = extraction
        self.scaffold = scaffold if scaffold is not None else {
            "scaffold_data": {
                "objective": "Build a territory plan",
                "context_frame": "You just joined a scrappy sales team.",
                "inputs": ["CRM export"],
                "constraint_dials": {"time_pressure": 4, "ambiguity": 3},
                "chosen_dimensions": ["Cognitive"],
                "dimension_justification": "Because the model said so.",
                "mechanics": ["Review data", "Write plan"],
            },
            "scaffold_preview_html": "<h1>Territory plan</h1>",
        }
        self.scores = list(scores or [])
        self.error = error
        self.scaffold_error = scaffold_error
        self.calls = {"extract": 0, "scaffold": 0, "question": 0, "score": 0}
        self.scaffold_dimensions = None

    async def extract_role_definition(self, jd_text):
        self.calls["extract"] += 1
        if self.error:
            raise self.error
        return self.extraction

    async def generate_scaffold(self, role_context, dimensions):
        self.calls["scaffold"] += 1
        self.scaffold_dimensions = list(dimensions)
        if self.scaffold_error:
            raise self.scaffold_error
        return self.scaffold

    async def generate_question(self, role_context, scenario):
        self.calls["question"] += 1
        return f"How would you handle this? {scenario}"

    async def score_question(self, question, criteria):
        self.calls["score"] += 1
        return self.scores.pop(0) if self.scores else 3


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now = self.now + timedelta(minutes=minutes)


class CollectingSpawner:
    """Captures background generation coroutines so tests can run them on demand."""

    def __init__(self):
        self.pending = []

    def __call__(self, coro):
        self.pending.append(coro)

    async def run_all(self):
        while self.pending:
            await self.pending.pop(0)

    def close(self):
        for coro in self.pending:
            coro.close()
        self.pending.clear()


@pytest.fixture
def fake_generation():
    return FakeGeneration()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spawner():
    spawn = CollectingSpawner()
    yield spawn
    spawn.close()


@pytest.fixture
def sales_definition():
    return dict(SALES_DEFINITION)


@pytest.fixture
def sales_flags():
    return dict(SALES_FLAGS)
