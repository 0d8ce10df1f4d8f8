"""The Fellow entity and the parsing of identity fragments.

A fragment is a plain mapping of Fellow attribute names to values coming
from one source: a manifest person string, a GraphQL user node, an
OpenCollective member, … ``normalize_fragment`` turns the loose shapes
sources produce into that mapping; ``FellowRegistry`` merges fragments
into Fellows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlsplit

# attributes a fragment may carry, in the order they are displayed/merged
SCALAR_FIELDS = (
    "name",
    "email",
    "description",
    "company",
    "location",
    "years",
    "github_username",
    "github_url",
    "website_url",
    "opencollective_url",
    "thanksdev_url",
    "twitter_url",
    "github_profile",
    "opencollective_profile",
)
URL_FIELDS = (
    "website_url",
    "github_url",
    "opencollective_url",
    "thanksdev_url",
    "twitter_url",
)
# keys accepted from manifests and raw records that still need classifying
_LOOSE_URL_KEYS = ("url", "web", "homepage")

_PERSON_PATTERN = re.compile(
    r"^\s*(?:(?:copyright\s*)?(?:©|\(c\))\s*)?"
    r"(?:(?P<years>\d{4}(?:\s*[-+]\s*(?:\d{4})?)?)\s+)?"
    r"(?P<name>[^<(]*?)\s*"
    r"(?:<(?P<email>[^>]*)>)?\s*"
    r"(?:\((?P<url>[^)]*)\))?\s*$",
    re.IGNORECASE,
)
# a comma that is not inside <email> or (url)
_PEOPLE_SEPARATOR = re.compile(r",\s*(?![^<>()]*[>)])")


@dataclass(eq=False)
class Fellow:
    """One real-world person or organisation credited as a backer.

    Instances compare by identity. They are created and merged only by a
    ``FellowRegistry``; when two Fellows turn out to be the same person the
    absorbed one points at the survivor through ``merged_into``.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    hireable: bool = False
    years: Optional[str] = None
    github_username: Optional[str] = None
    github_url: Optional[str] = None
    website_url: Optional[str] = None
    opencollective_url: Optional[str] = None
    thanksdev_url: Optional[str] = None
    twitter_url: Optional[str] = None
    github_profile: Optional[Mapping[str, Any]] = None
    opencollective_profile: Optional[Mapping[str, Any]] = None

    author_of_repositories: set[str] = field(default_factory=set)
    maintainer_of_repositories: set[str] = field(default_factory=set)
    contributor_of_repositories: set[str] = field(default_factory=set)
    funder_of_repositories: set[str] = field(default_factory=set)
    sponsor_of_repositories: set[str] = field(default_factory=set)
    donor_of_repositories: set[str] = field(default_factory=set)
    contributions_of_repository: dict[str, int] = field(default_factory=dict)

    order: int = 0
    merged_into: Optional["Fellow"] = field(default=None, repr=False)

    @property
    def url(self) -> Optional[str]:
        """The preferred URL: website first, then the platform profiles."""
        for name in URL_FIELDS:
            value = getattr(self, name)
            if value:
                return value
        return None

    @property
    def urls(self) -> list[str]:
        return [getattr(self, name) for name in URL_FIELDS if getattr(self, name)]

    @property
    def display_name(self) -> str:
        return self.name or self.github_username or self.url or ""

    def __repr__(self) -> str:
        return f"Fellow({self.display_name!r})"


def normalize_name(value: Optional[str]) -> str:
    return " ".join((value or "").split()).casefold()


def normalize_url(value: Optional[str]) -> str:
    if not value:
        return ""
    value = value.strip().lower()
    value = re.sub(r"^[a-z+]+://", "", value)
    if value.startswith("www."):
        value = value[4:]
    return value.rstrip("/")


def classify_url(url: str) -> dict[str, str]:
    """Map a URL onto the Fellow attribute(s) it belongs to, by host."""
    url = url.strip()
    if not url:
        return {}
    parts = urlsplit(url if "://" in url else f"https://{url}")
    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    segments = [s for s in parts.path.split("/") if s]

    if host == "github.com" and len(segments) == 1:
        return {"github_url": f"https://github.com/{segments[0]}", "github_username": segments[0]}
    if host == "opencollective.com":
        return {"opencollective_url": url}
    if host == "thanks.dev":
        return {"thanksdev_url": url}
    if host in ("twitter.com", "x.com"):
        return {"twitter_url": url}
    return {"website_url": url}


def split_people(value: str) -> list[str]:
    """Split a comma separated author string into person strings."""
    return [part.strip() for part in _PEOPLE_SEPARATOR.split(value) if part.strip()]


def parse_person(value: str) -> dict[str, Any]:
    """Parse ``[years ]Name[ <email>][ (url)]`` into a fragment."""
    match = _PERSON_PATTERN.match(value)
    if not match:
        return {"name": value.strip()}
    fragment: dict[str, Any] = {
        "years": match.group("years"),
        "name": match.group("name"),
        "email": match.group("email"),
    }
    if match.group("url"):
        fragment.update(classify_url(match.group("url")))
    return normalize_fragment(fragment)


def normalize_fragment(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Clean a fragment: drop empties, classify loose URLs, derive the GitHub username.

    Returns a new mapping, ``raw`` is left untouched.
    """
    fragment: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            value = value.strip()
        if value in (None, "", False):
            continue
        if key in _LOOSE_URL_KEYS:
            for url_key, url_value in classify_url(value).items():
                fragment.setdefault(url_key, url_value)
        elif key == "username":
            fragment.setdefault("github_username", value)
        else:
            fragment[key] = value

    if fragment.get("github_url") and not fragment.get("github_username"):
        derived = classify_url(fragment["github_url"])
        if derived.get("github_username"):
            fragment["github_username"] = derived["github_username"]
    if fragment.get("github_username", "").startswith("@"):
        fragment["github_username"] = fragment["github_username"][1:]
    return fragment


def fragments_from(value: Any) -> list[dict[str, Any]]:
    """Turn a manifest people field (string, record, or list of either) into fragments."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [parse_person(person) for person in split_people(value)]
    if isinstance(value, Mapping):
        return [normalize_fragment(value)]
    if isinstance(value, Iterable):
        result: list[dict[str, Any]] = []
        for item in value:
            result.extend(fragments_from(item))
        return result
    raise TypeError(f"Unsupported person value: {value!r}")
