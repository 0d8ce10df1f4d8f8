"""``.github/FUNDING.yml`` source: fallback usernames for the financial platforms."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import yaml

from github_backers.config import QueryOptions
from github_backers.errors import RemoteFetchError
from github_backers.providers.manifest import RAW_URL
from github_backers.query import query_text

logger = logging.getLogger("backers.funding")

FUNDING_PLATFORMS = ("github", "patreon", "open_collective", "ko_fi", "liberapay", "custom")


def parse_funding(text: str) -> dict[str, Any]:
    """Parse a funding document, keeping only the known platform keys."""
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        return {}
    return {key: data[key] for key in FUNDING_PLATFORMS if data.get(key)}


def get_funding_data(slug: str, opts: QueryOptions) -> dict[str, Any]:
    """Fetch and parse the funding file of ``slug``. Empty on any failure."""
    url = RAW_URL.format(slug=slug, path=".github/FUNDING.yml")
    try:
        return parse_funding(query_text(url, opts))
    except (RemoteFetchError, yaml.YAMLError) as exc:
        logger.warning(
            ".github/FUNDING.yml not available for %s: %s", slug, exc, extra={"slug": slug}
        )
        return {}


def first_funding_username(funding_data: Mapping[str, Any], platform: str) -> str:
    """The first username configured for ``platform``, or an empty string."""
    value = funding_data.get(platform)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
    return ""
