"""Backer roles and the seven-category result."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from github_backers.fellow import Fellow


class Role(str, Enum):
    AUTHOR = "author"
    MAINTAINER = "maintainer"
    CONTRIBUTOR = "contributor"
    FUNDER = "funder"
    SPONSOR = "sponsor"
    DONOR = "donor"

    @property
    def attribute(self) -> str:
        """Name of the Fellow set holding the repositories for this role."""
        return f"{self.value}_of_repositories"


BACKER_FIELDS = (
    "author",
    "authors",
    "maintainers",
    "contributors",
    "funders",
    "sponsors",
    "donors",
)

FIELD_ROLES: dict[str, Role] = {
    "author": Role.AUTHOR,
    "authors": Role.AUTHOR,
    "maintainers": Role.MAINTAINER,
    "contributors": Role.CONTRIBUTOR,
    "funders": Role.FUNDER,
    "sponsors": Role.SPONSOR,
    "donors": Role.DONOR,
}


@dataclass
class Backers:
    """Backers of one or more repositories.

    ``author`` holds the active copyright owners, ``authors`` everyone who
    ever authored. ``donors`` includes every funder and sponsor, and
    ``contributors`` includes every maintainer.
    """

    author: list["Fellow"] = field(default_factory=list)
    authors: list["Fellow"] = field(default_factory=list)
    maintainers: list["Fellow"] = field(default_factory=list)
    contributors: list["Fellow"] = field(default_factory=list)
    funders: list["Fellow"] = field(default_factory=list)
    sponsors: list["Fellow"] = field(default_factory=list)
    donors: list["Fellow"] = field(default_factory=list)

    def items(self) -> Iterator[tuple[str, list["Fellow"]]]:
        for name in BACKER_FIELDS:
            yield name, getattr(self, name)

    def extend(self, other: "Backers") -> "Backers":
        for name, fellows in other.items():
            getattr(self, name).extend(fellows)
        return self

    def is_empty(self) -> bool:
        return not any(fellows for _, fellows in self.items())
