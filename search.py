"""Full-text search over the cached site content."""

import re

from bs4 import BeautifulSoup, NavigableString


def _plain(text) -> str:
    """Visible text of an HTML fragment such as ``Led <i>Zeppelin</i>``."""
    if text is None:
        return ""
    if not isinstance(text, str):
        return str(text)
    if "<" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text()


def _matches(text, needle: str) -> bool:
    return needle in _plain(text).lower()


def highlight(text, query: str):
    """Wrap every case-insensitive match of ``query`` in ``<mark>``.

    Only text nodes are touched, so markup already in the text (the
    ``<i>`` titles) is never split. When there is a match the whole fragment
    is re-serialized as HTML: a bare ``&`` comes back as ``&amp;`` and void
    tags as ``<br/>``. Text without a match is returned as given.
    """
    if not query or not isinstance(text, str):
        return text
    pattern = re.compile(f"({re.escape(query)})", re.I)
    if not pattern.search(_plain(text)):
        return text

    soup = BeautifulSoup(text, "html.parser")
    for node in list(soup.find_all(string=True)):
        pieces = pattern.split(str(node))
        if len(pieces) == 1:
            continue
        replacement = []
        for i, piece in enumerate(pieces):
            if not piece:
                continue
            if i % 2:
                mark = soup.new_tag("mark")
                mark.string = piece
                replacement.append(mark)
            else:
                replacement.append(NavigableString(piece))
        node.replace_with(*replacement)
    return str(soup)


def _search_shows(shows: list, query: str, needle: str) -> list[dict]:
    results = []
    for show in shows:
        if not isinstance(show, dict):
            continue
        setlist = show.get("setlist") or []
        fields = [show.get("date"), show.get("venue"), show.get("context"), *setlist]
        if not any(_matches(f, needle) for f in fields):
            continue
        results.append({
            **show,
            "date": highlight(show.get("date", ""), query),
            "venue": highlight(show.get("venue", ""), query),
            "context": highlight(show.get("context", ""), query),
            "setlist": [highlight(song, query) for song in setlist],
        })
    return results


def _search_timeline(timeline: list, query: str, needle: str) -> list[dict]:
    results = []
    for item in timeline:
        if not isinstance(item, dict):
            continue
        year, text = str(item.get("year", "")), item.get("text", "")
        if _matches(year, needle) or _matches(text, needle):
            results.append({**item, "year": highlight(year, query), "text": highlight(text, query)})
    return results


def _search_albums(albums: list, query: str, needle: str) -> list[dict]:
    results = []
    for album in albums:
        if not isinstance(album, dict):
            continue
        tracks = album.get("tracks") or []
        fields = [album.get("album"), str(album.get("year", "")), album.get("description"), *tracks]
        if not any(_matches(f, needle) for f in fields):
            continue
        results.append({
            **album,
            "album": highlight(album.get("album", ""), query),
            "description": highlight(album.get("description", ""), query),
            "tracks": [highlight(t, query) for t in tracks],
        })
    return results


def search(doc: dict, query: str) -> dict | None:
    """Search every section of the content cache.

    Returns None for a blank query. Sections missing from the document
    simply produce no results.
    """
    if not query or not query.strip():
        return None
    query = query.strip()
    needle = query.lower()

    history = doc.get("history") or ""
    profiles = doc.get("profiles") or {}

    return {
        "query": query,
        "history": highlight(history, query) if _matches(history, needle) else None,
        "profiles": {
            name: highlight(text, query)
            for name, text in profiles.items()
            if needle in name.lower() or _matches(text, needle)
        },
        "shows": _search_shows(doc.get("shows") or [], query, needle),
        "timeline": _search_timeline(doc.get("timeline") or [], query, needle),
        "albums": _search_albums(doc.get("albums") or doc.get("albuns") or [], query, needle),
    }
