"""JSON content cache for the fan site."""

import os
import json
import copy
import logging
import tempfile
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = {"history": "", "profiles": {}, "shows": []}


def default_document() -> dict:
    return copy.deepcopy(DEFAULT_DOCUMENT)


def _with_defaults(data: dict) -> dict:
    """Fill in (or replace) missing and wrongly typed core fields."""
    for key, default in DEFAULT_DOCUMENT.items():
        value = data.get(key)
        if not isinstance(value, type(default)):
            if key in data:
                logger.warning("Cache field %r has unexpected type %s, resetting",
                               key, type(value).__name__)
            data[key] = copy.deepcopy(default)
    return data


class ContentStore:
    """Single JSON document holding all generated site content.

    Reads prefer the writable cache at ``path`` and fall back to the bundled
    read-only ``fallback_path`` snapshot. Neither reads nor writes raise:
    a broken cache reads as the empty default document and a failed write
    is logged and reported through the return value. A document that could
    not be written stays in memory and is what ``load()`` returns until a
    later save succeeds.
    """

    def __init__(self, path: str, fallback_path: str | None = None):
        self.path = path
        self.fallback_path = fallback_path
        self._unsaved = None
        self._unsaved_at = None

    def _candidates(self) -> list[str]:
        paths = [self.path]
        if self.fallback_path and self.fallback_path != self.path:
            paths.append(self.fallback_path)
        return paths

    def _read(self, path: str) -> dict | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Could not read cache %s: %s", path, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Cache %s is not a JSON object, ignoring", path)
            return None
        return data

    def load(self) -> dict:
        if self._unsaved is not None:
            return copy.deepcopy(self._unsaved)
        for path in self._candidates():
            data = self._read(path)
            if data is not None:
                return _with_defaults(data)
        return default_document()

    def save(self, doc: dict) -> bool:
        try:
            payload = json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
        except (TypeError, ValueError) as e:
            logger.error("Cache document is not serializable: %s", e)
            return False

        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".data-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to save cache %s, keeping it in memory: %s", self.path, e)
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            self._unsaved = copy.deepcopy(doc)
            self._unsaved_at = datetime.now()
            return False

        self._unsaved = None
        self._unsaved_at = None
        logger.debug("Saved cache %s", self.path)
        return True

    def last_modified(self) -> datetime | None:
        """Modification time of the document ``load()`` would return, if any."""
        if self._unsaved is not None:
            return self._unsaved_at
        for path in self._candidates():
            if self._read(path) is None:
                continue
            try:
                return datetime.fromtimestamp(os.path.getmtime(path))
            except OSError:
                continue
        return None
