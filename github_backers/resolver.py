"""Backer resolution: runs every source for a repository and reads the merged result back.

One call to ``get_backers`` moves through these stages in order:

  1. resolve target     slug from the manifest, or the manifest from the slug
  2. resolve usernames  GitHub Sponsors / OpenCollective / ThanksDev accounts
  3. seed               people listed in the manifest
  4. GitHub             contributors, sponsors, profiles of donors (needs credentials)
  5. financial          ThanksDev and OpenCollective, side by side
  6. attach             associate everyone with the slug, read membership back

A failing source is logged and contributes nothing. Anything else that
goes wrong degrades to an empty ``Backers``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Iterator, Mapping, Optional

import requests

from github_backers.config import BackersQueryOptions
from github_backers.credentials import has_credentials
from github_backers.errors import RemoteFetchError, UnresolvedTarget
from github_backers.fellow import URL_FIELDS, Fellow
from github_backers.models import BACKER_FIELDS, FIELD_ROLES, Backers, Role
from github_backers.providers.base_provider import BaseProvider
from github_backers.providers.funding import first_funding_username, get_funding_data
from github_backers.providers.github import (
    GitHubClient,
    GitHubContributorsProvider,
    GitHubSponsorsProvider,
)
from github_backers.providers.manifest import (
    ManifestProvider,
    get_github_slug_from_package_data,
    get_package_data,
)
from github_backers.providers.opencollective import OpenCollectiveProvider
from github_backers.providers.thanksdev import ThanksDevProvider
from github_backers.query import fetch_ok, gather, with_pool
from github_backers.registry import FellowRegistry

logger = logging.getLogger("backers.resolver")


@dataclass(frozen=True)
class SourceUsernames:
    github_sponsors: str = ""
    opencollective: str = ""
    thanksdev: str = ""


@contextmanager
def resolution_scope(opts: BackersQueryOptions) -> Iterator[BackersQueryOptions]:
    """Options carrying one registry, pool and HTTP session for a whole call.

    Whatever the caller already supplied is reused and left open; what is
    created here is closed on exit.
    """
    registry = opts.registry if opts.registry is not None else FellowRegistry()
    scoped = with_pool(replace(opts, registry=registry))
    session: Optional[requests.Session] = None
    if scoped.session is None and not scoped.offline:
        session = requests.Session()
        scoped = replace(scoped, session=session)
    try:
        yield scoped
    finally:
        if session is not None:
            session.close()


def resolve_target(opts: BackersQueryOptions) -> tuple[str, dict]:
    """Determine the repository slug and the manifest, each from the other if needed."""
    slug = opts.github_slug if isinstance(opts.github_slug, str) else ""
    package_data: dict = dict(opts.package_data) if isinstance(opts.package_data, Mapping) else {}

    if slug and opts.package_data is None and not opts.offline:
        package_data = get_package_data(slug, opts, fallback={})
    if opts.github_slug is None and package_data:
        try:
            slug = get_github_slug_from_package_data(package_data)
        except UnresolvedTarget as exc:
            logger.debug("%s", exc)

    if not slug and not package_data:
        raise UnresolvedTarget("Neither a GitHub slug nor package data could be determined")
    return slug, package_data


def _pick_username(option: Any, badge_value: Any) -> str:
    if option is False:
        return ""
    if isinstance(option, str) and option:
        return option
    return badge_value if isinstance(badge_value, str) else ""


def resolve_usernames(
    opts: BackersQueryOptions, slug: str, package_data: Mapping[str, Any]
) -> SourceUsernames:
    """Explicit option, then manifest badge config, then FUNDING.yml (fetched at most once)."""
    badges = package_data.get("badges")
    badge_config = (badges.get("config") if isinstance(badges, Mapping) else None) or {}
    owner = slug.split("/")[0] if slug else ""

    thanksdev = _pick_username(
        opts.thanksdev_github_username, badge_config.get("thanksdevGithubUsername")
    )
    if not thanksdev and opts.thanksdev_github_username is not False:
        thanksdev = owner
    github_sponsors = _pick_username(
        opts.github_sponsors_username, badge_config.get("githubSponsorsUsername")
    )
    opencollective = _pick_username(
        opts.opencollective_username, badge_config.get("opencollectiveUsername")
    )

    needs_funding = (
        not github_sponsors and opts.github_sponsors_username is not False
    ) or (not opencollective and opts.opencollective_username is not False)
    if needs_funding and slug and not opts.offline:
        funding_data = get_funding_data(slug, opts)
        if not github_sponsors and opts.github_sponsors_username is not False:
            github_sponsors = first_funding_username(funding_data, "github")
        if not opencollective and opts.opencollective_username is not False:
            opencollective = first_funding_username(funding_data, "open_collective")

    return SourceUsernames(
        github_sponsors=github_sponsors, opencollective=opencollective, thanksdev=thanksdev
    )


def _safely(provider: BaseProvider, target: Any) -> Backers:
    """Run one source; a failure is logged and yields no backers."""
    try:
        return provider.fetch_with_tracking(target)
    except Exception:
        logger.warning(
            "Fetching %s backers failed for %s",
            provider.SOURCE_NAME,
            target,
            exc_info=True,
            extra={"source": provider.SOURCE_NAME},
        )
        return Backers()


def _attach(result: Backers, slug: str, registry: FellowRegistry) -> None:
    """Associate every current member of every category with ``slug``."""
    if not slug:
        return
    for name, fellows in result.items():
        for fellow in fellows:
            registry.add_repo_association(fellow, FIELD_ROLES[name], slug)
    for fellow in result.maintainers:
        registry.add_repo_association(fellow, Role.CONTRIBUTOR, slug)
    for fellow in result.funders + result.sponsors:
        registry.add_repo_association(fellow, Role.DONOR, slug)


def _enrich_donor_profiles(result: Backers, client: GitHubClient) -> None:
    """Fetch the GitHub profile of every donor known only by username."""
    registry = client.registry
    pending = [
        fellow.github_username
        for fellow in registry.add(result.donors)
        if fellow.github_username and not fellow.github_profile
    ]

    def fetch(username: str) -> Optional[Fellow]:
        try:
            return client.get_profile(username)
        except RemoteFetchError:
            logger.warning("Fetching GitHub profile failed for %s", username, exc_info=True)
            return None

    gather(fetch, pending)


def _verify_urls(result: Backers, opts: BackersQueryOptions) -> None:
    """Clear URLs that no longer resolve."""
    fellows = opts.registry.add(*(fellows for _, fellows in result.items()))
    checks = [
        (fellow, name, getattr(fellow, name))
        for fellow in fellows
        for name in URL_FIELDS
        if getattr(fellow, name)
    ]

    def check(item: tuple[Fellow, str, str]) -> None:
        fellow, name, url = item
        if not fetch_ok(url, opts):
            logger.info("Dropping unreachable URL %s of %r", url, fellow, extra={"url": url})
            opts.registry.clear_url(fellow, name, url)

    gather(check, checks)


def _read_back(result: Backers, slug: str, registry: FellowRegistry) -> Backers:
    """Final membership, with merges made during enrichment collapsed."""
    author = registry.sort(registry.add(result.author))
    if slug:
        return Backers(
            author=author,
            authors=registry.entities_by_repo_and_role(slug, Role.AUTHOR),
            maintainers=registry.entities_by_repo_and_role(slug, Role.MAINTAINER),
            contributors=registry.entities_by_repo_and_role(slug, Role.CONTRIBUTOR),
            funders=registry.entities_by_repo_and_role(slug, Role.FUNDER),
            sponsors=registry.entities_by_repo_and_role(slug, Role.SPONSOR),
            donors=registry.entities_by_repo_and_role(slug, Role.DONOR),
        )
    sort = registry.sort
    return Backers(
        author=author,
        authors=sort(registry.add(result.author, result.authors)),
        maintainers=sort(registry.add(result.maintainers)),
        contributors=sort(registry.add(result.maintainers, result.contributors)),
        funders=sort(registry.add(result.funders)),
        sponsors=sort(registry.add(result.sponsors)),
        donors=sort(registry.add(result.funders, result.sponsors, result.donors)),
    )


def _resolve(opts: BackersQueryOptions) -> Backers:
    registry = opts.registry
    slug, package_data = resolve_target(opts)
    usernames = resolve_usernames(opts, slug, package_data)
    online = not opts.offline

    result = ManifestProvider(opts, registry).fetch_with_tracking(package_data)
    _attach(result, slug, registry)

    authed = has_credentials(opts.credentials)
    if online and not authed:
        logger.warning(
            "GitHub credentials not provided, will skip fetching GitHub Contributors, Sponsors, and Profiles"
        )
    if online and authed:
        if slug:
            result.extend(_safely(GitHubContributorsProvider(opts, registry), slug))
        if usernames.github_sponsors:
            result.extend(_safely(GitHubSponsorsProvider(opts, registry), usernames.github_sponsors))
        else:
            logger.info("No GitHub Sponsors username for %s", slug or "package", extra={"slug": slug})
        _enrich_donor_profiles(result, GitHubClient(opts, registry))

    if online:
        financial: list[tuple[BaseProvider, str]] = []
        if usernames.thanksdev:
            financial.append((ThanksDevProvider(opts, registry), usernames.thanksdev))
        if usernames.opencollective:
            financial.append((OpenCollectiveProvider(opts, registry), usernames.opencollective))
        else:
            logger.info("No OpenCollective username for %s", slug or "package", extra={"slug": slug})
        for fetched in gather(lambda job: _safely(*job), financial):
            result.extend(fetched)

    if online and opts.verify_urls:
        _verify_urls(result, opts)

    _attach(result, slug, registry)
    return _read_back(result, slug, registry)


def get_backers(opts: Optional[BackersQueryOptions] = None) -> Backers:
    """Resolve the backers of one repository. Never raises: failures yield an empty result."""
    opts = opts or BackersQueryOptions()
    with resolution_scope(opts) as scoped:
        try:
            return _resolve(scoped)
        except Exception:
            target = scoped.github_slug if isinstance(scoped.github_slug, str) else None
            logger.error(
                "Failed to fetch backers for %s",
                f"GitHub Repository: {target}" if target else "the given package data",
                exc_info=True,
                extra={"slug": target},
            )
            return Backers()


def _union(results: list[Backers], registry: FellowRegistry) -> Backers:
    combined = Backers()
    for name in BACKER_FIELDS:
        fellows = registry.add(*(getattr(result, name) for result in results))
        setattr(combined, name, registry.sort(fellows))
    return combined


def get_backers_from_repositories(
    slugs: list[str], opts: Optional[BackersQueryOptions] = None
) -> Backers:
    """Resolve several repositories side by side and deduplicate across them."""
    opts = opts or BackersQueryOptions()
    with resolution_scope(opts) as scoped:

        def resolve(slug: str) -> Backers:
            return get_backers(replace(scoped, github_slug=slug, package_data=None))

        return _union(gather(resolve, slugs), scoped.registry)


def get_backers_from_usernames(
    usernames: list[str], opts: Optional[BackersQueryOptions] = None
) -> Backers:
    """Backers of every non-fork repository owned by these users or organisations."""
    opts = opts or BackersQueryOptions()
    with resolution_scope(opts) as scoped:
        repos = GitHubClient(scoped, scoped.registry).get_repositories_from_usernames(usernames)
        return get_backers_from_repositories([repo["full_name"] for repo in repos], scoped)


def get_backers_from_search(query: str, opts: Optional[BackersQueryOptions] = None) -> Backers:
    """Backers of every repository matching a GitHub repository search."""
    opts = opts or BackersQueryOptions()
    with resolution_scope(opts) as scoped:
        repos = GitHubClient(scoped, scoped.registry).get_repositories_from_search(query)
        return get_backers_from_repositories([repo["full_name"] for repo in repos], scoped)
