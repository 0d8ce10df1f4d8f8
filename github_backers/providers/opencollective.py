"""OpenCollective source: backers of a collective, split by recency and amount."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from github_backers.errors import RemoteFetchError
from github_backers.models import Backers
from github_backers.providers.base_provider import BaseProvider
from github_backers.query import fetch_ok, gather, query_json

logger = logging.getLogger("backers.opencollective")

MEMBERS_URL = "https://opencollective.com/{username}/members.json"
BACKER_ROLE = "BACKER"


def last_month(now: Optional[datetime] = None) -> datetime:
    """The same moment one calendar month earlier, clamped to the month's last day."""
    now = now or datetime.now(timezone.utc)
    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def exceeds(dollars: Any, threshold: Optional[int]) -> bool:
    """Whether a dollar amount is non-zero and above ``threshold`` cents."""
    if not dollars:
        return False
    return not threshold or dollars * 100 > threshold


def is_sponsor(member: Mapping[str, Any], threshold: Optional[int], since: datetime) -> bool:
    when = parse_timestamp(member.get("lastTransactionAt"))
    return (
        member.get("role") == BACKER_ROLE
        and exceeds(member.get("lastTransactionAmount"), threshold)
        and when is not None
        and when >= since
    )


def is_donor(member: Mapping[str, Any], threshold: Optional[int]) -> bool:
    return member.get("role") == BACKER_ROLE and exceeds(member.get("totalAmountDonated"), threshold)


def member_fragment(member: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "opencollective_profile": member,
        "description": member.get("description"),
        "email": member.get("email"),
        "github_url": member.get("github"),
        "name": member.get("name"),
        "opencollective_url": member.get("profile"),
        "twitter_url": member.get("twitter"),
        "website_url": member.get("website"),
    }


class OpenCollectiveProvider(BaseProvider):
    """Recent backers above the monthly threshold are sponsors, big lifetime backers donors."""

    SOURCE_NAME = "opencollective"

    def fetch(self, target: str) -> Backers:
        url = MEMBERS_URL.format(username=target)
        try:
            members = query_json(url, self.options)
            if not isinstance(members, list):
                raise RemoteFetchError("Response was not an array of members", url=url)
        except RemoteFetchError as err:
            raise RemoteFetchError(
                f"Fetching OpenCollective sponsors and donors failed for: {target}",
                url=url,
                messages=[str(err)],
            ) from err

        members = gather(self.repair_github_url, [m for m in members if isinstance(m, Mapping)])
        since = last_month()
        sponsors = [m for m in members if is_sponsor(m, self.options.sponsor_cents_threshold, since)]
        donors = [m for m in members if is_donor(m, self.options.donor_cents_threshold)]
        return Backers(
            sponsors=self.registry.add([member_fragment(m) for m in sponsors]),
            donors=self.registry.add([member_fragment(m) for m in donors]),
        )

    def repair_github_url(self, member: Mapping[str, Any]) -> dict[str, Any]:
        """Replace a dead GitHub URL with one derived from the collective profile, or drop it.

        OpenCollective keeps whatever GitHub URL the member once typed in,
        which goes stale when the account is renamed.
        """
        member = dict(member)
        github = member.get("github")
        if not github or fetch_ok(github, self.options):
            return member
        username = (member.get("profile") or "").rstrip("/").rsplit("/", 1)[-1]
        candidate = f"https://github.com/{username}"
        if username and fetch_ok(candidate, self.options):
            logger.debug("Replaced dead GitHub URL %s with %s", github, candidate)
            member["github"] = candidate
        else:
            member["github"] = None
        return member
