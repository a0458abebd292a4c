"""Runtime configuration for the Led Zeppelin fan site."""

import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# ---------------------------------------------------------------------------
# Process settings (read once at start)
# ---------------------------------------------------------------------------

GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

PORT = int(os.environ.get("PORT", 3000))
SITE_DIR = os.environ.get("SITE_DIR", BASE_DIR)

# The deployment root may be read-only, so the live cache lives in a
# writable location and the repo copy is only a bundled snapshot.
DATA_FILE = os.environ.get("DATA_FILE", os.path.join(tempfile.gettempdir(), "data.json"))
SNAPSHOT_FILE = os.path.join(BASE_DIR, "data.json")

REFRESH_INTERVAL = int(os.environ.get("REFRESH_INTERVAL", 3600))  # seconds
UPDATE_DELAY = float(os.environ.get("UPDATE_DELAY", 10))  # between updaters
PROFILE_DELAY = float(os.environ.get("PROFILE_DELAY", 8))  # between members

CONTENT_LANGUAGE = os.environ.get("CONTENT_LANGUAGE", "Brazilian Portuguese")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# Band
# ---------------------------------------------------------------------------

BAND_NAME = "Led Zeppelin"
MEMBERS = ("Jimmy Page", "Robert Plant", "John Paul Jones", "John Bonham")

SHOW_COUNT = 10
MANDATED_SHOWS = (
    "the band's first official concert, in 1968",
    "the 'Celebration Day' reunion concert at the O2 Arena, London, on 10/12/2007",
)
