"""ThanksDev source: dependency-funding donors of a GitHub or GitLab account."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional, Sequence

from github_backers.config import BackersQueryOptions
from github_backers.errors import RemoteFetchError
from github_backers.models import Backers
from github_backers.providers.base_provider import BaseProvider
from github_backers.query import query_json
from github_backers.registry import FellowRegistry

logger = logging.getLogger("backers.thanksdev")

API_URL = "https://api.thanks.dev/v1/vip/dependee/{platform}/{username}"
PROFILE_URL = "https://thanks.dev/d/{platform}/{username}"
# 30 is the average number of days in a month
MONTHLY_AGE = 30


class ThanksDevPlatform(str, Enum):
    GITHUB = "gh"
    GITLAB = "gl"


def within_threshold(cents: Optional[float], threshold: Optional[int]) -> bool:
    """Zero amounts never count. Unknown amounts always do."""
    if cents is None:
        return True
    if not cents:
        return False
    return not threshold or cents >= threshold


def donor_fragment(donor: Sequence[Any]) -> dict[str, Any]:
    """Fragment for a ``[platform, username, cents]`` donor record."""
    platform, username = donor[0], donor[1]
    fragment: dict[str, Any] = {
        "thanksdev_url": PROFILE_URL.format(platform=platform, username=username),
    }
    if platform == ThanksDevPlatform.GITHUB.value:
        fragment["github_username"] = username
        fragment["github_url"] = f"https://github.com/{username}"
    return fragment


class ThanksDevProvider(BaseProvider):
    """Last 30 days of donations are sponsors, all time are donors."""

    SOURCE_NAME = "thanksdev"

    def __init__(
        self,
        options: BackersQueryOptions,
        registry: FellowRegistry,
        platform: ThanksDevPlatform = ThanksDevPlatform.GITHUB,
    ) -> None:
        super().__init__(options, registry)
        self.platform = platform

    def fetch(self, target: str) -> Backers:
        url = API_URL.format(platform=self.platform.value, username=target)
        sponsors = self._donors(
            f"{url}?age={MONTHLY_AGE}", self.options.sponsor_cents_threshold, "sponsors", target
        )
        donors = self._donors(url, self.options.donor_cents_threshold, "donors", target)
        return Backers(
            sponsors=self.registry.add([donor_fragment(d) for d in sponsors]),
            donors=self.registry.add([donor_fragment(d) for d in donors]),
        )

    def _donors(
        self, url: str, threshold: Optional[int], kind: str, username: str
    ) -> list[Sequence[Any]]:
        try:
            data = query_json(url, self.options)
            records = data.get("donors") if isinstance(data, dict) else None
            if not isinstance(records, list):
                raise RemoteFetchError("Response did not include an array of donors", url=url)
        except RemoteFetchError as err:
            raise RemoteFetchError(
                f"Fetching ThanksDev {kind} failed for: {self.platform.value}/{username}",
                url=url,
                messages=[str(err)],
            ) from err
        return [
            record
            for record in records
            if isinstance(record, (list, tuple))
            and len(record) >= 2
            and record[1]
            and within_threshold(record[2] if len(record) > 2 else None, threshold)
        ]
