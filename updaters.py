"""Regenerate the history, member profiles and show list in the content cache."""

import json
import time
import logging
from datetime import datetime
from typing import Callable

import freshness
from config import BAND_NAME, CONTENT_LANGUAGE, MANDATED_SHOWS, SHOW_COUNT
from freshness import DEFAULT_POLICY, FieldState, FreshnessPolicy, ProfilesMode
from generator import TextGenerator, convert_emphasis
from store import ContentStore

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_DELAY = 8  # seconds between member prompts


class ShowsParseError(ValueError):
    """The model's show list was not the JSON shape we asked for."""


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_STYLE_RULES = (
    "If you mention any album or song, put the title in italics using asterisks "
    "(e.g. *{example}*). Do not include introductions. Write in {language}. "
    "Do not make anything up."
)

HISTORY_PROMPT = (
    "Act as an expert in rock and roll history. Write a well-written, concise and "
    "engaging summary of the history of the band {band} in at most 5 paragraphs of "
    "at most 4 lines each, including important dates. The text must contain only the "
    "requested information. " + _STYLE_RULES
)

PROFILE_PROMPT = (
    "Act as an expert in rock and roll history. Write a short biography of {member}, "
    "member of {band}, in at most 5 paragraphs of at most 4 lines each. Include "
    "important dates, highlight and explain their symbol, and describe their style "
    "and technical characteristics. " + _STYLE_RULES
)

SHOWS_PROMPT = (
    "Act as a rock historian and music curator. Select the {count} most relevant and "
    "iconic concerts of the career of {band}. The selection must include {mandated}. "
    "Choose the remaining concerts for their historical importance, cultural impact, "
    "legendary performances or for marking turning points in the band's career. "
    "Present the final list of {count} concerts in strict chronological order. "
    "Return ONLY a strictly valid JSON array of objects with the fields: date "
    "(DD/MM/YYYY), venue, context, setlist (array of song titles). If you mention any "
    "album or song inside the string values, put the title in italics using asterisks "
    "(e.g. *{example}*). Do not include any explanatory text outside the JSON. "
    "Write in {language}. Do not make anything up."
)


def history_prompt() -> str:
    return HISTORY_PROMPT.format(band=BAND_NAME, example="Led Zeppelin IV",
                                 language=CONTENT_LANGUAGE)


def profile_prompt(member: str) -> str:
    return PROFILE_PROMPT.format(member=member, band=BAND_NAME,
                                 example="Stairway to Heaven", language=CONTENT_LANGUAGE)


def shows_prompt() -> str:
    return SHOWS_PROMPT.format(count=SHOW_COUNT, band=BAND_NAME,
                               mandated=" and ".join(MANDATED_SHOWS),
                               example="The Song Remains the Same",
                               language=CONTENT_LANGUAGE)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def update_history(store: ContentStore, generator: TextGenerator,
                   policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False,
                   doc: dict | None = None) -> dict:
    if doc is None:
        doc = store.load()
    state = freshness.history_state(doc, policy, force)
    if state is FieldState.FRESH:
        logger.info("History is fresh, skipping")
        return doc

    logger.info("Updating history (%s)", state.value)
    text = generator.generate(history_prompt(), label="history")
    if not text or text == doc["history"]:
        return doc

    doc["history"] = text
    store.save(doc)
    return doc


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def _members_to_update(doc: dict, policy: FreshnessPolicy, force: bool) -> list[str]:
    state = freshness.profiles_state(doc, policy, force)
    if state is FieldState.FRESH:
        return []
    if state is FieldState.FORCE or policy.profiles_mode is ProfilesMode.REGENERATE_ALL:
        return list(policy.members)
    return [m for m in policy.members
            if freshness.member_needs_update(doc["profiles"], m, policy)]


def update_profiles(store: ContentStore, generator: TextGenerator,
                    policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False,
                    delay: float = DEFAULT_PROFILE_DELAY,
                    sleep: Callable[[float], None] = time.sleep,
                    doc: dict | None = None) -> dict:
    if doc is None:
        doc = store.load()
    members = _members_to_update(doc, policy, force)
    if not members:
        logger.info("Profiles are complete, skipping")
        return doc

    profiles = dict(doc["profiles"])
    changed = False
    for i, member in enumerate(members):
        if i > 0 and delay:
            sleep(delay)
        logger.info("Updating profile %d/%d: %s", i + 1, len(members), member)
        text = generator.generate(profile_prompt(member), label=member)
        if text and text != profiles.get(member):
            profiles[member] = text
            changed = True

    if changed:
        doc["profiles"] = profiles
        store.save(doc)
    return doc


# ---------------------------------------------------------------------------
# Shows
# ---------------------------------------------------------------------------

# Responses written in Portuguese sometimes use data/local/contexto.
_SHOW_FIELD_ALIASES = {
    "date": ("date", "data"),
    "venue": ("venue", "local"),
    "context": ("context", "contexto"),
    "setlist": ("setlist",),
}

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d")


def _field(item: dict, name: str):
    for key in _SHOW_FIELD_ALIASES[name]:
        if item.get(key) is not None:
            return item[key]
    return None


def _normalize_show(item) -> dict:
    if not isinstance(item, dict):
        raise ShowsParseError(f"show entry is not an object: {item!r}")
    setlist = _field(item, "setlist") or []
    if not isinstance(setlist, list):
        raise ShowsParseError(f"setlist is not a list: {setlist!r}")
    return {
        "date": str(_field(item, "date") or ""),
        "venue": str(_field(item, "venue") or ""),
        "context": convert_emphasis(str(_field(item, "context") or "")),
        "setlist": [convert_emphasis(str(song)) for song in setlist],
    }


def parse_show_date(value: str) -> datetime | None:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    return None


def parse_shows(raw: str) -> list[dict]:
    """Parse the model's show list: a bare array or ``{"shows": [...]}``."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ShowsParseError(f"invalid JSON: {e}") from e

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict) and isinstance(data.get("shows"), list):
        items = data["shows"]
    else:
        raise ShowsParseError("expected a JSON array or an object with a 'shows' list")

    shows = [_normalize_show(item) for item in items]

    dates = [parse_show_date(s["date"]) for s in shows]
    if all(dates):
        order = sorted(range(len(shows)), key=lambda i: dates[i])
        shows = [shows[i] for i in order]
    else:
        logger.warning("Some show dates could not be parsed, keeping model order")
    return shows


def update_shows(store: ContentStore, generator: TextGenerator,
                 policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False,
                 doc: dict | None = None) -> dict:
    if doc is None:
        doc = store.load()
    state = freshness.shows_state(doc, policy, force)
    if state is FieldState.FRESH:
        logger.info("Show list is fresh, skipping")
        return doc

    logger.info("Updating show list (%s)", state.value)
    raw = generator.generate(shows_prompt(), json_output=True, label="shows")
    if not raw:
        return doc

    try:
        shows = parse_shows(raw)
    except ShowsParseError as e:
        logger.error("Discarding show list from the model: %s", e)
        return doc

    if not shows:
        logger.warning("Model returned an empty show list, keeping the cached one")
        return doc
    if len(shows) != SHOW_COUNT:
        logger.warning("Expected %d shows, got %d", SHOW_COUNT, len(shows))

    doc["shows"] = shows
    store.save(doc)
    return doc
