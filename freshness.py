"""Decides which cached fields need regenerating."""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from config import MEMBERS


class FieldState(enum.Enum):
    FRESH = "fresh"
    STALE = "stale"
    FORCE = "force"


class ProfilesMode(enum.Enum):
    # Only members whose biography is missing or short are regenerated.
    PER_MEMBER = "per-member"
    # Any gap regenerates all four biographies.
    REGENERATE_ALL = "regenerate-all"


@dataclass(frozen=True)
class FreshnessPolicy:
    history_min_chars: int = 100
    profile_min_chars: int = 50
    members: tuple[str, ...] = MEMBERS
    strict_profiles: bool = True
    profiles_mode: ProfilesMode = ProfilesMode.PER_MEMBER
    max_age: timedelta | None = timedelta(hours=24)
    force_all_when_history_empty: bool = False


DEFAULT_POLICY = FreshnessPolicy()


def _resolve(stale: bool, force: bool) -> FieldState:
    if force:
        return FieldState.FORCE
    return FieldState.STALE if stale else FieldState.FRESH


def history_state(doc: dict, policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False) -> FieldState:
    history = doc.get("history") or ""
    return _resolve(len(history) <= policy.history_min_chars, force)


def member_needs_update(profiles: dict, member: str, policy: FreshnessPolicy = DEFAULT_POLICY) -> bool:
    text = profiles.get(member) or ""
    return len(text) < policy.profile_min_chars


def profiles_state(doc: dict, policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False) -> FieldState:
    profiles = doc.get("profiles") or {}
    present = [name for name, text in profiles.items() if text]
    stale = len(present) < len(policy.members)
    if policy.strict_profiles and not stale:
        stale = any(member_needs_update(profiles, m, policy) for m in policy.members)
    return _resolve(stale, force)


def shows_state(doc: dict, policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False) -> FieldState:
    return _resolve(not doc.get("shows"), force)


def is_expired(last_modified: datetime | None, policy: FreshnessPolicy = DEFAULT_POLICY,
               now: datetime | None = None) -> bool:
    """True when the cache file is older than ``policy.max_age``.

    A cache that was never written has no age and is left to the per-field
    checks.
    """
    if policy.max_age is None or last_modified is None:
        return False
    now = now or datetime.now()
    return now - last_modified > policy.max_age


def should_force_all(doc: dict, last_modified: datetime | None,
                     policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False,
                     now: datetime | None = None) -> bool:
    if force or is_expired(last_modified, policy, now):
        return True
    return policy.force_all_when_history_empty and not doc.get("history")


def plan(doc: dict, last_modified: datetime | None = None,
         policy: FreshnessPolicy = DEFAULT_POLICY, force: bool = False,
         now: datetime | None = None) -> dict[str, FieldState]:
    force = should_force_all(doc, last_modified, policy, force, now)
    return {
        "history": history_state(doc, policy, force),
        "profiles": profiles_state(doc, policy, force),
        "shows": shows_state(doc, policy, force),
    }
