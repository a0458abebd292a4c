"""
Shared fixtures for the fan site tests.

Provides a temporary content store, a scripted stand-in for the Gemini
gateway, a fake HTTP session for exercising the real gateway, and a sleep
recorder so no test ever waits on a real delay.
"""

import json

import pytest

from config import MEMBERS
from store import ContentStore


LONG_HISTORY = (
    "O Led Zeppelin foi formado em Londres em 1968 por Jimmy Page, Robert Plant, "
    "John Paul Jones e John Bonham, e lançou *Led Zeppelin IV* em 1971."
)

SHOWS = [
    {"date": "10/12/2007", "venue": "O2 Arena, London", "context": "Reunion, *Celebration Day*",
     "setlist": ["*Good Times Bad Times*", "*Kashmir*"]},
    {"date": "15/10/1968", "venue": "University of Surrey, Guildford",
     "context": "First official concert", "setlist": ["*Dazed and Confused*"]},
    {"date": "04/08/1979", "venue": "Knebworth", "context": "Last UK shows", "setlist": []},
    {"date": "27/07/1973", "venue": "Madison Square Garden", "context": "*The Song Remains the Same*",
     "setlist": ["*Rock and Roll*"]},
    {"date": "09/01/1970", "venue": "Royal Albert Hall", "context": "Filmed concert", "setlist": []},
    {"date": "05/05/1973", "venue": "Tampa Stadium", "context": "Attendance record", "setlist": []},
    {"date": "24/05/1975", "venue": "Earls Court", "context": "Five-night residency", "setlist": []},
    {"date": "21/06/1977", "venue": "The Forum, Inglewood", "context": "Listen to this Eddie", "setlist": []},
    {"date": "29/06/1969", "venue": "Bath Festival", "context": "Breakthrough in the UK", "setlist": []},
    {"date": "07/07/1980", "venue": "Eissporthalle, Berlin", "context": "Last concert with Bonham",
     "setlist": []},
]


def profile_text(member: str) -> str:
    return f"{member} is a founding member of Led Zeppelin, known for *Stairway to Heaven*."


def populated_document() -> dict:
    return {
        "history": LONG_HISTORY,
        "profiles": {m: profile_text(m) for m in MEMBERS},
        "shows": [dict(s) for s in SHOWS],
    }


class FakeGenerator:
    """Stands in for TextGenerator; answers by label."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def generate(self, prompt, *, temperature=None, json_output=False,
                 emphasis="italic", label=""):
        self.calls.append({"prompt": prompt, "label": label, "json_output": json_output})
        response = self.responses.get(label)
        if callable(response):
            return response(prompt)
        return response


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


def gemini_payload(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeSession:
    """Replays queued responses (or raises queued exceptions) per POST."""

    def __init__(self, responses=None, responder=None):
        self.queue = list(responses or [])
        self.responder = responder
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.responder is not None:
            return self.responder(json)
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def store(tmp_path):
    return ContentStore(str(tmp_path / "cache" / "data.json"))


@pytest.fixture
def populated_store(store):
    store.save(populated_document())
    return store


@pytest.fixture
def sleeps():
    recorded = []

    def _sleep(seconds):
        recorded.append(seconds)

    _sleep.calls = recorded
    return _sleep


@pytest.fixture
def shows_json():
    return json.dumps(SHOWS)
