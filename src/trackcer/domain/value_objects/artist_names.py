"""Artist credit splitting and fuzzy artist/song matching.

Hey future me - this is the ONE place where artist credits get taken apart and compared!
Spotify gives us "Drake, Rihanna", Apple Music gives us "Drake & Rihanna" or
"Drake feat. Rihanna", and Genius has its own idea of what the primary artist is called.
Everything that caches artist images, counts "top artists" or matches a Genius song
goes through here, so the rules stay consistent across the whole app.

The tricky part is acts whose NAME contains a separator: "Earth, Wind & Fire" is one act,
not three. We keep a static list of such acts and never split them. Credits like
"Tyler, The Creator & Kali Uchis" also keep their comma because ", The" almost always
belongs to a name.

Similarity percentages use rapidfuzz's fuzz.ratio (0-100), the same scorer the
enrichment code uses everywhere else.

Examples:
    >>> split_artist_names("Drake feat. Rihanna")
    ['Drake', 'Rihanna']
    >>> split_artist_names("Earth, Wind & Fire")
    ['Earth, Wind & Fire']
    >>> is_spotify_artist_match("The Weeknd", "the weeknd")
    True
"""

import re

from rapidfuzz import fuzz

# =============================================================================
# KNOWN MULTI-ARTIST NAMES
# Hey future me - these are acts whose own name contains ",", "&" or similar.
# Matched case-insensitively as a SUBSTRING of the credit, so
# "Simon & Garfunkel, Live" is kept whole too.
# =============================================================================

DO_NOT_SPLIT_ARTISTS: tuple[str, ...] = (
    "Tyler, The Creator",
    "Portugal, The Man",
    "Dexys Midnight Runners",
    "Earth, Wind & Fire",
    "Crosby, Stills & Nash",
    "Crosby, Stills, Nash & Young",
    "Emerson, Lake & Palmer",
    "Blood, Sweat & Tears",
    "Peter, Paul & Mary",
    "Simon & Garfunkel",
    "Hall & Oates",
    "Ike & Tina Turner",
    "Sonny & Cher",
    "Brooks & Dunn",
    "Tegan & Sara",
    "Angus & Julia Stone",
    "She & Him",
    "Hootie & The Blowfish",
    "Huey Lewis & The News",
    "Me First & the Gimme Gimmes",
    "Toots & The Maytals",
    "Martha & The Vandellas",
    "Iron & Wine",
    "Nick Cave & The Bad Seeds",
    "Bob Marley & The Wailers",
    "The Mamas & The Papas",
    "Tom Petty & The Heartbreakers",
    "Derek & The Dominos",
    "Captain & Tennille",
    "Ashford & Simpson",
    "Sam & Dave",
    "Peaches & Herb",
    "Richard & Linda Thompson",
    "Bob Seger & The Silver Bullet Band",
    "Brownie McGhee & Sonny Terry",
    "Gladys Knight & The Pips",
    "Little Anthony & The Imperials",
    "Gary Puckett & The Union Gap",
    "Smokey Robinson & The Miracles",
    "Sly & The Family Stone",
    "Dr. Hook & The Medicine Show",
    "Emerson, Lake & Powell",
)

SIMILARITY_THRESHOLD = 85.0
REASONABLY_CLOSE_THRESHOLD = 70.0
SONG_ARTIST_THRESHOLD = 80.0

_FEATURING = r"\s+(?:feat\.|featuring|ft\.|with)\s+"
_SPLIT_ALL_RE = re.compile(rf"[,&]|{_FEATURING}", re.IGNORECASE)
_SPLIT_NO_COMMA_RE = re.compile(rf"&|{_FEATURING}", re.IGNORECASE)
_COMMA_THE_RE = re.compile(r",\s+The\b", re.IGNORECASE)

_BRACKETED_RE = re.compile(r"\s*\(.*?\)|\s*\[.*?\]")
_LEADING_THE_RE = re.compile(r"^the\s+", re.IGNORECASE)
_FEATURING_TAIL_RE = re.compile(r"\s+(?:feat\.|featuring|ft\.|with)\s+.*", re.IGNORECASE)
_AMPERSAND_TAIL_RE = re.compile(r"\s*&\s*.*")
_COMMA_TAIL_RE = re.compile(r"\s*,\s*.*")
_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")
_PARENS_RE = re.compile(r"\([^)]*\)")
_SQUARE_RE = re.compile(r"\[[^\]]*\]")


def _similarity(a: str, b: str) -> float:
    """Similarity percentage (0-100) of two strings."""
    if not a or not b:
        return 0.0
    return float(fuzz.ratio(a, b))


def split_artist_names(artist_name: str) -> list[str]:
    """Split a free-text artist credit into individual artists.

    Args:
        artist_name: Credit as delivered by the provider (e.g. "A, B & C feat. D")

    Returns:
        Trimmed, non-empty artist names in credit order. A credit containing a
        known multi-artist act name is returned unchanged as a single entry.
    """
    if not artist_name or not artist_name.strip():
        return []

    lowered = artist_name.lower()
    for known in DO_NOT_SPLIT_ARTISTS:
        if known.lower() in lowered:
            return [artist_name.strip()]

    # "X, The Y" - the comma is part of a name, only split on & and featuring
    pattern = _SPLIT_NO_COMMA_RE if _COMMA_THE_RE.search(artist_name) else _SPLIT_ALL_RE
    return [part.strip() for part in pattern.split(artist_name) if part.strip()]


def is_exact_match(name1: str, name2: str) -> bool:
    """Case-insensitive equality after trimming."""
    return name1.strip().lower() == name2.strip().lower()


def clean_artist_name(name: str) -> str:
    """Reduce an artist name to its comparable core.

    Lowercases, drops bracketed qualifiers, a leading "the", any featuring tail and
    punctuation, then collapses whitespace.
    """
    cleaned = name.lower()
    cleaned = _BRACKETED_RE.sub("", cleaned)
    cleaned = _LEADING_THE_RE.sub("", cleaned)
    cleaned = _FEATURING_TAIL_RE.sub("", cleaned)
    cleaned = _NON_ALNUM_RE.sub("", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned.strip())


def is_similar_artist(name1: str, name2: str) -> bool:
    """Decide whether two artist names refer to the same act.

    Checks, in order: plain equality, equality of cleaned names, containment
    (both longer than 3 chars) and finally a similarity of at least 85 %.

    Args:
        name1: First name (usually what we searched for)
        name2: Second name (usually what the provider returned)

    Returns:
        True if the names are considered the same artist
    """
    n1 = name1.strip().lower()
    n2 = name2.strip().lower()
    if n1 == n2:
        return True

    clean1 = clean_artist_name(n1)
    clean2 = clean_artist_name(n2)
    if clean1 and clean1 == clean2:
        return True

    if len(n1) > 3 and len(n2) > 3 and (n1 in n2 or n2 in n1):
        return True

    return _similarity(clean1, clean2) >= SIMILARITY_THRESHOLD


def is_reasonably_close(name1: str, name2: str) -> bool:
    """Lenient check (>= 70 %) used for "take the first search hit" fallbacks."""
    return (
        _similarity(clean_artist_name(name1.strip()), clean_artist_name(name2.strip()))
        >= REASONABLY_CLOSE_THRESHOLD
    )


def is_spotify_artist_match(candidate: str, query: str) -> bool:
    """Accept a Spotify search hit for an artist query.

    Case-insensitive equality wins outright, otherwise the names must be at
    least 85 % similar.
    """
    if is_exact_match(candidate, query):
        return True
    return (
        _similarity(candidate.strip().lower(), query.strip().lower())
        >= SIMILARITY_THRESHOLD
    )


def search_variations(artist_name: str) -> list[str]:
    """Build alternative search terms for an artist, most specific first.

    Examples:
        >>> search_variations("The Roots (Band)")
        ['The Roots (Band)', 'The Roots', 'Roots (Band)']
    """
    variations: list[str] = [artist_name]

    cleaned = _BRACKETED_RE.sub("", artist_name)
    if cleaned != artist_name:
        variations.append(cleaned.strip())

    if artist_name.lower().startswith("the "):
        variations.append(artist_name[4:])
    else:
        variations.append(f"The {artist_name}")

    for pattern in (_FEATURING_TAIL_RE, _AMPERSAND_TAIL_RE, _COMMA_TAIL_RE):
        stripped = pattern.sub("", artist_name)
        if stripped != artist_name and stripped.strip():
            variations.append(stripped.strip())

    # dict.fromkeys keeps first-seen order
    return [v for v in dict.fromkeys(variations) if v.strip()]


def normalize_for_comparison(name: str) -> str:
    """Lowercase, drop (...) and [...] content and special characters."""
    normalized = name.lower()
    normalized = _PARENS_RE.sub("", normalized)
    normalized = _SQUARE_RE.sub("", normalized)
    normalized = _NON_ALNUM_RE.sub("", normalized)
    return normalized.strip()


def _fuzzy_song_artist_match(result_artist: str, search_artist: str) -> bool:
    def _prepare(value: str) -> str:
        value = value.lower()
        for separator in ("&", ",", "feat.", "ft."):
            value = value.replace(separator, " ")
        return _WHITESPACE_RE.sub(" ", value.strip())

    return _similarity(_prepare(result_artist), _prepare(search_artist)) >= SONG_ARTIST_THRESHOLD


def is_song_match(
    result_title: str, result_artist: str, track_name: str, artist_name: str
) -> bool:
    """Check whether a Genius search hit is the track we are looking for.

    Hey future me - Genius titles often carry extras like "(Remix)" or "[Live]", and
    credits differ ("Drake" vs "Drake & Future"), so both title and artist are compared
    by CONTAINMENT in either direction after normalization. The artist gets a second
    chance through an 80 % fuzzy match with separators flattened to spaces.

    Args:
        result_title: Title of the Genius hit
        result_artist: Primary artist name of the Genius hit
        track_name: Track name we searched for
        artist_name: Artist credit we searched for

    Returns:
        True if both title and artist match
    """
    title = normalize_for_comparison(result_title)
    artist = normalize_for_comparison(result_artist)
    search_track = normalize_for_comparison(track_name)
    search_artist = normalize_for_comparison(artist_name)

    title_match = title in search_track or search_track in title
    artist_match = artist in search_artist or search_artist in artist
    if not artist_match:
        artist_match = _fuzzy_song_artist_match(artist, search_artist)

    return title_match and artist_match


__all__ = [
    "DO_NOT_SPLIT_ARTISTS",
    "SIMILARITY_THRESHOLD",
    "clean_artist_name",
    "is_exact_match",
    "is_reasonably_close",
    "is_similar_artist",
    "is_song_match",
    "is_spotify_artist_match",
    "normalize_for_comparison",
    "search_variations",
    "split_artist_names",
]
