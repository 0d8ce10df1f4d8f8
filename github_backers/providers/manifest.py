"""Package manifest source: repository slug detection and backer seeding."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional

from github_backers.config import QueryOptions
from github_backers.errors import RemoteFetchError, UnresolvedTarget
from github_backers.models import Backers
from github_backers.providers.base_provider import BaseProvider
from github_backers.query import query_json

logger = logging.getLogger("backers.manifest")

RAW_URL = "https://raw.githubusercontent.com/{slug}/HEAD/{path}"

# bevry/projectz
# github:bevry/projectz
# git@github.com:bevry/projectz.git
# https://github.com/bevry/projectz(.git)
# ssh://github.com/bevry/projectz.git
# git+https://github.com/bevry/projectz.git#commit-ish
_SLUG_PATTERN = re.compile(
    r"^(?:"
    r"(?:git\+)?(?:https?|ssh|git)://(?:[^@/]+@)?(?:www\.)?github\.com[:/]"
    r"|git@github\.com:"
    r"|github:"
    r")?"
    r"(?P<slug>[\w.-]+/[\w.-]+?)"
    r"(?:\.git)?/?(?:#.*)?$"
)


def get_github_slug_from_url(url: str) -> Optional[str]:
    """Extract ``owner/repo`` from a GitHub repository reference, None if it is not one."""
    match = _SLUG_PATTERN.match(url.strip())
    return match.group("slug") if match else None


def get_github_slug_from_package_data(package_data: Mapping[str, Any]) -> str:
    """Slug from the manifest ``repository`` (string or ``{url}``), else ``homepage``."""
    repository = package_data.get("repository")
    candidates = [
        repository if isinstance(repository, str) else None,
        repository.get("url") if isinstance(repository, Mapping) else None,
        package_data.get("homepage"),
    ]
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            slug = get_github_slug_from_url(candidate)
            if slug:
                return slug
    raise UnresolvedTarget(
        "Could not determine GitHub slug from package data "
        f"(repository={repository!r}, homepage={package_data.get('homepage')!r})"
    )


def get_package_data(
    slug: str, opts: QueryOptions, fallback: Optional[dict] = None
) -> dict:
    """Fetch ``package.json`` from the default branch of ``slug``.

    With a ``fallback`` a failure is logged and the fallback returned.
    """
    url = RAW_URL.format(slug=slug, path="package.json")
    try:
        data = query_json(url, opts)
        if not isinstance(data, dict):
            raise RemoteFetchError(f"package.json of {slug} is not an object", url=url)
        return data
    except RemoteFetchError as exc:
        if fallback is None:
            raise
        logger.warning("package.json not available for %s: %s", slug, exc, extra={"slug": slug})
        return fallback


class ManifestProvider(BaseProvider):
    """Seeds every category from the manifest's people fields."""

    SOURCE_NAME = "manifest"

    def fetch(self, target: Mapping[str, Any]) -> Backers:
        add = self.registry.add
        author = add(target.get("author"))
        maintainers = add(target.get("maintainers"))
        funders = add(target.get("funders"))
        sponsors = add(target.get("sponsors"))
        return Backers(
            author=author,
            authors=add(author, target.get("authors")),
            maintainers=maintainers,
            contributors=add(maintainers, target.get("contributors")),
            funders=funders,
            sponsors=sponsors,
            donors=add(funders, sponsors, target.get("donors")),
        )
