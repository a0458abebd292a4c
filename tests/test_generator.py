"""
Tests for generator.py -- TextGenerator retry policy and post-processing.
"""

import requests

from conftest import FakeResponse, FakeSession, gemini_payload
from generator import (
    DEFAULT_TEMPERATURE,
    RetryPolicy,
    TextGenerator,
    clean_json_response,
    convert_emphasis,
    strip_emphasis,
)


def _ok(text):
    return FakeResponse(200, gemini_payload(text))


def _rate_limited():
    return FakeResponse(429, {"error": {"status": "RESOURCE_EXHAUSTED", "message": "Too many requests"}})


def _generator(session, sleep, **kwargs):
    return TextGenerator("test-key", session=session, sleep=sleep, **kwargs)


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------

class TestEmphasis:

    def test_asterisks_become_italics(self):
        assert convert_emphasis("*x*") == "<i>x</i>"

    def test_already_converted_text_is_unchanged(self):
        assert convert_emphasis("<i>x</i>") == "<i>x</i>"
        assert convert_emphasis(convert_emphasis("*x*")) == "<i>x</i>"

    def test_double_asterisks_are_treated_as_emphasis(self):
        assert convert_emphasis("**Kashmir** live") == "<i>Kashmir</i> live"

    def test_several_titles(self):
        text = "Between *Led Zeppelin II* and *Houses of the Holy*"
        assert convert_emphasis(text) == "Between <i>Led Zeppelin II</i> and <i>Houses of the Holy</i>"

    def test_strip_removes_markers(self):
        assert strip_emphasis("From **Physical Graffiti**: *Kashmir*") == "From Physical Graffiti: Kashmir"

    def test_empty_input(self):
        assert convert_emphasis("") == ""
        assert strip_emphasis(None) == ""


class TestCleanJson:

    def test_strips_code_fence(self):
        assert clean_json_response('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'

    def test_trims_preamble_and_trailer(self):
        raw = 'Here is the list:\n```json\n{"shows": []}\n```\nEnjoy!'
        assert clean_json_response(raw) == '{"shows": []}'

    def test_plain_json_untouched(self):
        assert clean_json_response("[1, 2]") == "[1, 2]"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestGenerate:

    def test_missing_key_returns_none_without_calling(self, sleeps):
        session = FakeSession()
        generator = TextGenerator(None, session=session, sleep=sleeps)
        assert generator.generate("prompt") is None
        assert session.posts == []

    def test_success_converts_emphasis(self, sleeps):
        session = FakeSession([_ok("Album *Led Zeppelin IV* (1971)\n")])
        text = _generator(session, sleeps).generate("prompt")
        assert text == "Album <i>Led Zeppelin IV</i> (1971)"

    def test_request_shape(self, sleeps):
        session = FakeSession([_ok("x")])
        _generator(session, sleeps, model="gemini-test").generate("hello")
        post = session.posts[0]
        assert post["url"].endswith("/models/gemini-test:generateContent")
        assert post["headers"] == {"x-goog-api-key": "test-key"}
        assert post["json"]["contents"] == [{"parts": [{"text": "hello"}]}]
        assert post["json"]["generationConfig"] == {"temperature": DEFAULT_TEMPERATURE}

    def test_temperature_override(self, sleeps):
        session = FakeSession([_ok("x")])
        _generator(session, sleeps).generate("hello", temperature=0.2)
        assert session.posts[0]["json"]["generationConfig"]["temperature"] == 0.2

    def test_strip_and_raw_emphasis_modes(self, sleeps):
        session = FakeSession([_ok("*Kashmir*"), _ok("*Kashmir*")])
        generator = _generator(session, sleeps)
        assert generator.generate("p", emphasis="strip") == "Kashmir"
        assert generator.generate("p", emphasis=None) == "*Kashmir*"

    def test_json_output_mode(self, sleeps):
        session = FakeSession([_ok('```json\n[{"date": "15/10/1968"}]\n```')])
        text = _generator(session, sleeps).generate("p", json_output=True)
        assert text == '[{"date": "15/10/1968"}]'
        assert session.posts[0]["json"]["generationConfig"]["responseMimeType"] == "application/json"

    def test_json_output_keeps_asterisks(self, sleeps):
        session = FakeSession([_ok('[{"context": "*Kashmir*"}]')])
        assert _generator(session, sleeps).generate("p", json_output=True) == '[{"context": "*Kashmir*"}]'


class TestRetry:

    def test_rate_limit_then_success_backs_off_linearly(self, sleeps):
        session = FakeSession([_rate_limited(), _rate_limited(), _ok("done")])
        assert _generator(session, sleeps).generate("p") == "done"
        assert len(session.posts) == 3
        assert sleeps.calls == [30, 60]
        assert sum(sleeps.calls) == 90

    def test_quota_message_counts_as_rate_limit(self, sleeps):
        quota = FakeResponse(403, {"error": {"status": "PERMISSION_DENIED",
                                             "message": "Quota exceeded for metric"}})
        session = FakeSession([quota, _ok("done")])
        assert _generator(session, sleeps).generate("p") == "done"
        assert sleeps.calls == [30]

    def test_gives_up_after_three_retries(self, sleeps):
        session = FakeSession([_rate_limited() for _ in range(4)])
        assert _generator(session, sleeps).generate("p") is None
        assert len(session.posts) == 4
        assert sleeps.calls == [30, 60, 90]

    def test_other_http_error_is_not_retried(self, sleeps):
        session = FakeSession([FakeResponse(500, {"error": {"message": "internal"}}), _ok("never")])
        assert _generator(session, sleeps).generate("p") is None
        assert len(session.posts) == 1
        assert sleeps.calls == []

    def test_network_error_is_not_retried(self, sleeps):
        session = FakeSession([requests.ConnectionError("down"), _ok("never")])
        assert _generator(session, sleeps).generate("p") is None
        assert len(session.posts) == 1
        assert sleeps.calls == []

    def test_malformed_response_is_not_retried(self, sleeps):
        session = FakeSession([FakeResponse(200, None, text="<html>"), _ok("never")])
        assert _generator(session, sleeps).generate("p") is None
        assert len(session.posts) == 1

    def test_empty_candidates_is_a_failure(self, sleeps):
        session = FakeSession([FakeResponse(200, {"candidates": []})])
        assert _generator(session, sleeps).generate("p") is None

    def test_custom_policy(self, sleeps):
        session = FakeSession([_rate_limited(), _rate_limited()])
        generator = _generator(session, sleeps, retry_policy=RetryPolicy(max_retries=1, backoff_seconds=5))
        assert generator.generate("p") is None
        assert len(session.posts) == 2
        assert sleeps.calls == [5]
