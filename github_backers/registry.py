"""Cross-source identity resolution for backers.

Every source hands the registry partial identity fragments. The registry
decides, through the ordered ``MATCH_RULES`` table, whether a fragment
describes a Fellow it already holds, and merges or creates accordingly:

  1. username      same GitHub username (case-insensitive)
  2. email         same email address (case-insensitive)
  3. name_and_url  names agree and at least one URL is shared
  4. name          same name, and no username or email tells them apart

After a fragment lands, any other Fellow that now matches the survivor by
one of the first three rules is folded in too. That is how two records
seen separately early on collapse once a later source links them.

One registry is scoped to one top-level resolution call (or one batch of
repositories) and is safe to use from the worker threads of that call.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Iterable, Mapping, Optional

from github_backers.fellow import (
    SCALAR_FIELDS,
    URL_FIELDS,
    Fellow,
    fragments_from,
    normalize_fragment,
    normalize_name,
    normalize_url,
)
from github_backers.models import Role

logger = logging.getLogger("backers.registry")

Identity = Mapping[str, Any]
MatchRule = Callable[[Identity, Identity], bool]

_IDENTIFYING_FIELDS = ("name", "email", "github_username") + URL_FIELDS


def _same(a: Identity, b: Identity, key: str) -> bool:
    left, right = a.get(key), b.get(key)
    return bool(left and right and left.casefold() == right.casefold())


def _conflict(a: Identity, b: Identity, key: str) -> bool:
    left, right = a.get(key), b.get(key)
    return bool(left and right and left.casefold() != right.casefold())


def _distinguished(a: Identity, b: Identity) -> bool:
    return _conflict(a, b, "github_username") or _conflict(a, b, "email")


def _shared_url(a: Identity, b: Identity) -> bool:
    left = {normalize_url(a.get(key)) for key in URL_FIELDS} - {""}
    right = {normalize_url(b.get(key)) for key in URL_FIELDS} - {""}
    return bool(left & right)


def match_username(a: Identity, b: Identity) -> bool:
    return _same(a, b, "github_username")


def match_email(a: Identity, b: Identity) -> bool:
    return _same(a, b, "email")


def match_name_and_url(a: Identity, b: Identity) -> bool:
    left, right = normalize_name(a.get("name")), normalize_name(b.get("name"))
    if left and right:
        return left == right and _shared_url(a, b)
    # a nameless record (e.g. a bare ThanksDev URL) can only join through a URL
    return _shared_url(a, b) and not _distinguished(a, b)


def match_name(a: Identity, b: Identity) -> bool:
    left = normalize_name(a.get("name"))
    return bool(left) and left == normalize_name(b.get("name")) and not _distinguished(a, b)


MATCH_RULES: tuple[tuple[str, MatchRule], ...] = (
    ("username", match_username),
    ("email", match_email),
    ("name_and_url", match_name_and_url),
    ("name", match_name),
)
# rules strong enough to fold two existing Fellows together
MERGE_RULES = MATCH_RULES[:3]


def identity_of(fellow: Fellow) -> dict[str, Any]:
    return {key: getattr(fellow, key) for key in SCALAR_FIELDS if getattr(fellow, key)}


def first_matching_rule(
    a: Identity, b: Identity, rules: Iterable[tuple[str, MatchRule]] = MATCH_RULES
) -> Optional[str]:
    for name, rule in rules:
        if rule(a, b):
            return name
    return None


def sort_key(fellow: Fellow) -> tuple[str, int]:
    return (fellow.display_name.casefold(), fellow.order)


class FellowRegistry:
    """Holds at most one Fellow per identity and the repositories they back."""

    def __init__(self) -> None:
        self._fellows: list[Fellow] = []
        self._lock = threading.RLock()
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._fellows)

    @property
    def fellows(self) -> list[Fellow]:
        with self._lock:
            return list(self._fellows)

    @staticmethod
    def current(fellow: Fellow) -> Fellow:
        """The live Fellow that ``fellow`` was merged into (itself if never merged)."""
        while fellow.merged_into is not None:
            fellow = fellow.merged_into
        return fellow

    def ensure(self, fragment: Mapping[str, Any]) -> Fellow:
        """Merge ``fragment`` into the Fellow it describes, creating one if needed."""
        fragment = normalize_fragment(fragment)
        if not any(fragment.get(key) for key in _IDENTIFYING_FIELDS):
            raise ValueError(f"Fragment has nothing to identify a Fellow by: {fragment!r}")

        with self._lock:
            survivor = self._find(fragment)
            if survivor is None:
                survivor = Fellow(order=next(self._sequence))
                self._fellows.append(survivor)
            self._absorb(survivor, fragment)
            self._fold_matches(survivor)
            return survivor

    def add(self, *items: Any) -> list[Fellow]:
        """Ensure every fragment among ``items``, returning the distinct Fellows.

        Items may be fragments, person strings, Fellows (passed through) or
        lists of any of these. Fragments without identifying data are skipped.
        """
        result: list[Fellow] = []
        seen: set[int] = set()
        for fellow in self._iter_fellows(items):
            fellow = self.current(fellow)
            if id(fellow) not in seen:
                seen.add(id(fellow))
                result.append(fellow)
        return result

    @staticmethod
    def sort(fellows: Iterable[Fellow]) -> list[Fellow]:
        return sorted(fellows, key=sort_key)

    def add_repo_association(self, fellow: Fellow, role: Role, slug: str) -> None:
        if not slug:
            return
        with self._lock:
            getattr(self.current(fellow), role.attribute).add(slug)

    def set_contributions(self, fellow: Fellow, slug: str, count: int) -> None:
        with self._lock:
            target = self.current(fellow)
            target.contributions_of_repository[slug] = max(
                count, target.contributions_of_repository.get(slug, 0)
            )

    def clear_url(self, fellow: Fellow, name: str, url: str) -> None:
        """Unset URL attribute ``name`` of the live Fellow if it still holds ``url``."""
        if name not in URL_FIELDS:
            raise ValueError(f"Not a URL attribute: {name}")
        with self._lock:
            target = self.current(fellow)
            if getattr(target, name) == url:
                setattr(target, name, None)

    def entities_by_repo_and_role(self, slug: str, role: Role) -> list[Fellow]:
        with self._lock:
            return self.sort(
                f for f in self._fellows if slug in getattr(f, role.attribute)
            )

    def _iter_fellows(self, items: Iterable[Any]) -> Iterable[Fellow]:
        for item in items:
            if item is None:
                continue
            if isinstance(item, Fellow):
                yield item
            elif isinstance(item, (list, tuple, set)):
                yield from self._iter_fellows(item)
            else:
                for fragment in fragments_from(item):
                    if any(fragment.get(key) for key in _IDENTIFYING_FIELDS):
                        yield self.ensure(fragment)

    def _find(self, fragment: Identity) -> Optional[Fellow]:
        for _, rule in MATCH_RULES:
            for fellow in self._fellows:
                if rule(identity_of(fellow), fragment):
                    return fellow
        return None

    def _fold_matches(self, survivor: Fellow) -> None:
        while True:
            identity = identity_of(survivor)
            other = next(
                (
                    f
                    for f in self._fellows
                    if f is not survivor
                    and first_matching_rule(identity, identity_of(f), MERGE_RULES)
                ),
                None,
            )
            if other is None:
                return
            logger.debug("Merging %r into %r", other, survivor)
            self._merge(survivor, other)

    @staticmethod
    def _absorb(fellow: Fellow, fragment: Identity) -> None:
        for key in SCALAR_FIELDS:
            value = fragment.get(key)
            if value and not getattr(fellow, key):
                setattr(fellow, key, value)
        if fragment.get("hireable"):
            fellow.hireable = True

    def _merge(self, survivor: Fellow, other: Fellow) -> None:
        self._absorb(survivor, identity_of(other))
        survivor.hireable = survivor.hireable or other.hireable
        for role in Role:
            getattr(survivor, role.attribute).update(getattr(other, role.attribute))
        for slug, count in other.contributions_of_repository.items():
            survivor.contributions_of_repository[slug] = max(
                count, survivor.contributions_of_repository.get(slug, 0)
            )
        survivor.order = min(survivor.order, other.order)
        other.merged_into = survivor
        self._fellows.remove(other)
