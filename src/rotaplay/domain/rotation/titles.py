"""
Base-title normalization.

Strips rendition suffixes so that "25 Minutes (Soul Version)",
"25 Minutes - Remix" and "25 Minutes Acoustic" all compare equal.
"""

import re

_BRACKETED = re.compile(r"\s*[\(\[][^\)\]]*[\)\]]\s*")

_DASH_RENDITION = re.compile(
    r"\s+[-–—]\s+(?:.*\b(?:remix|acoustic|live|radio|club|extended|instrumental|"
    r"unplugged|remaster(?:ed)?|version|ver\.|mix|edit|dub|demo|karaoke|stripped|"
    r"deluxe|bonus|original|alternate|alt\.|cover|reprise|interlude|orchestral|"
    r"symphony|piano|guitar|vocal).*)$",
    re.IGNORECASE,
)

_BARE_RENDITION = re.compile(
    r"\s+(?:remix|acoustic|live|radio\s+edit|club\s+mix|extended\s+(?:mix|version)|"
    r"instrumental|unplugged|remaster(?:ed)?|karaoke|stripped|orchestral)$",
    re.IGNORECASE,
)

_FEATURING = re.compile(r"\s+(?:feat\.?|ft\.?)\s+.+$", re.IGNORECASE)


def base_title(title: str) -> str:
    """Extract the base title by stripping rendition/variant suffixes.

    Examples:
        base_title("25 Minutes (Soul Version)")     # "25 minutes"
        base_title("Hello [Remix]")                 # "hello"
        base_title("Song (Feat. X) (Remix)")        # "song"
        base_title("Bohemian Rhapsody - Acoustic")  # "bohemian rhapsody"
        base_title("Bohemian Rhapsody Remix")       # "bohemian rhapsody"
        base_title("My Song - Live Version")        # "my song"
        base_title("Track feat. Artist")            # "track"

    Returns:
        Case-folded base title, or "" for empty input
    """
    if not title:
        return ""

    base = _BRACKETED.sub(" ", title).strip()
    base = _DASH_RENDITION.sub("", base)
    base = _BARE_RENDITION.sub("", base)
    base = _FEATURING.sub("", base)

    return " ".join(base.split()).casefold()
