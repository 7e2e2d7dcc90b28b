import asyncio
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.errors import VideoProviderError
from app.main import app
from app.models.diagnosis import VehicleDetails, VideoHit
from app.services.guided_session import GuidedDiagnosisSession, get_guided_session
from app.services.video_resolver import VideoResolver


INITIAL_REPLY = """Diagnosis:
A knocking noise from the engine usually points to ignition timing, low-octane fuel, or worn rod bearings.

Follow-up questions:
1. Does the knocking get louder when you accelerate?
2. Did you recently fill up with a different fuel?
3. Is the oil pressure warning light on?
"""

FINAL_REPLY = """**Final Diagnosis:** The knock is caused by worn spark plugs and a failing knock sensor.

**Required Parts:**
- Spark plugs: electrodes are worn past the service limit
- Knock sensor - intermittent signal
  confirmed by the symptoms at idle

Repair steps:
1. Replace the spark plugs.
2. Replace the knock sensor.
"""


class FakeDiagnosisProvider:
    """Replays canned replies in order; the last one repeats."""

    def __init__(self, *replies: str, error: Optional[Exception] = None):
        self.replies = list(replies)
        self.error = error
        self.calls: List[list] = []

    async def generate(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    def prompt_text(self, call: int = -1) -> str:
        return "\n".join(m.content for m in self.calls[call])


class FakeVideoSearch:
    """
    Returns one hit per query. Queries containing a key of ``fail_on`` raise,
    keys of ``delays`` sleep first, keys of ``hits`` get those hits instead.
    """

    def __init__(
        self,
        hits: Optional[Dict[str, List[VideoHit]]] = None,
        fail_on=(),
        delays: Optional[Dict[str, float]] = None,
    ):
        self.hits = hits or {}
        self.fail_on = tuple(fail_on)
        self.delays = delays or {}
        self.queries: List[str] = []

    async def search(self, query: str) -> List[VideoHit]:
        self.queries.append(query)

        for key, delay in self.delays.items():
            if key in query:
                await asyncio.sleep(delay)

        for key in self.fail_on:
            if key in query:
                raise VideoProviderError(f"search failed for {key}")

        for key, hits in self.hits.items():
            if key in query:
                return hits

        slug = query.lower().replace(" ", "-")
        return [VideoHit(url=f"https://www.youtube.com/watch?v={slug}", title=f"How to: {query}")]


@pytest.fixture
def vehicle():
    return VehicleDetails(
        carType="Toyota",
        carModel="Camry 2020",
        mileage="50000",
        problemDescription="engine knocking noise",
    )


@pytest.fixture
def video_search():
    return FakeVideoSearch()


@pytest.fixture
def make_session(video_search):
    def _make(*replies, error=None, videos=video_search, video_timeout=1.0):
        provider = FakeDiagnosisProvider(*(replies or (INITIAL_REPLY,)), error=error)
        session = GuidedDiagnosisSession(
            diagnosis_provider=provider,
            video_resolver=VideoResolver(videos, timeout=video_timeout),
        )
        return session, provider

    return _make


@pytest.fixture
def client_for():
    def _client(session: GuidedDiagnosisSession) -> TestClient:
        app.dependency_overrides[get_guided_session] = lambda: session
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
