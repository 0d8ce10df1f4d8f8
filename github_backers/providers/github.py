"""GitHub source: profiles, contributors, sponsors, organisation members, repositories."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping

from github_backers.config import BackersQueryOptions
from github_backers.errors import RemoteFetchError
from github_backers.fellow import Fellow
from github_backers.models import Backers, Role
from github_backers.providers.base_provider import BaseProvider
from github_backers.query import gather, query_graphql, query_rest
from github_backers.registry import FellowRegistry

logger = logging.getLogger("backers.github")

BOT_MARKER = "[bot]"

USER_QUERY = """
query($login: String!) {
  user(login: $login) {
    bio company email isHireable location login name url websiteUrl
  }
}
"""

ORGANIZATION_QUERY = """
query($login: String!) {
  organization(login: $login) {
    description email location login name url websiteUrl
  }
}
"""

SPONSORS_QUERY = """
query($login: String!, $first: Int!, $after: String) {
  user(login: $login) {
    sponsors(first: $first, after: $after) {
      pageInfo { hasNextPage endCursor }
      nodes {
        ... on User { bio company email isHireable location login name url websiteUrl }
        ... on Organization { description email location login name url websiteUrl }
      }
    }
  }
}
"""


def graphql_profile_fragment(profile: Mapping[str, Any]) -> dict[str, Any]:
    """Fragment for a GraphQL User or Organization node."""
    return {
        "github_profile": profile,
        "company": profile.get("company"),
        "description": profile.get("bio") or profile.get("description"),
        "email": profile.get("email"),
        "github_url": profile.get("url"),
        "github_username": profile.get("login"),
        "hireable": profile.get("isHireable"),
        "location": profile.get("location"),
        "name": profile.get("name"),
        "website_url": profile.get("websiteUrl"),
    }


def rest_profile_fragment(profile: Mapping[str, Any]) -> dict[str, Any]:
    """Fragment for a REST ``/users/{login}`` response."""
    return {
        "github_profile": profile,
        "company": profile.get("company"),
        "description": profile.get("bio"),
        "email": profile.get("email"),
        "github_url": profile.get("html_url"),
        "github_username": profile.get("login"),
        "hireable": profile.get("hireable"),
        "homepage": profile.get("blog"),
        "location": profile.get("location"),
        "name": profile.get("name"),
    }


def is_bot(profile: Mapping[str, Any]) -> bool:
    return BOT_MARKER in (profile.get("login") or "") or profile.get("type") == "Bot"


class GitHubClient:
    """GitHub REST and GraphQL calls whose people land in the registry."""

    def __init__(self, options: BackersQueryOptions, registry: FellowRegistry) -> None:
        self.options = options
        self.registry = registry

    def _graphql_node(self, query: str, field: str, login: str) -> Mapping[str, Any]:
        opts = replace(self.options, result_field=field, variables={"login": login})
        try:
            node = query_graphql(query, opts)
        except RemoteFetchError as err:
            raise RemoteFetchError(
                f"Fetching GitHub {field} failed for username: {login}",
                messages=[str(err)],
            ) from err
        if not node:
            raise RemoteFetchError(f"No GitHub {field} was returned for username: {login}")
        return node

    def get_user(self, username: str) -> Fellow:
        profile = self._graphql_node(USER_QUERY, "user", username)
        return self.registry.ensure(graphql_profile_fragment(profile))

    def get_organization(self, username: str) -> Fellow:
        profile = self._graphql_node(ORGANIZATION_QUERY, "organization", username)
        return self.registry.ensure(graphql_profile_fragment(profile))

    def get_profile_from_api_url(self, url: str) -> Fellow:
        if "api.github.com" not in url:
            raise RemoteFetchError(f"Cannot fetch the GitHub Profile for non-API URL: {url}")
        profile = query_rest(replace(self.options, url=url, pathname=None))
        return self.registry.ensure(rest_profile_fragment(profile))

    def get_profile(self, username: str) -> Fellow:
        """A user or, failing that, an organisation profile."""
        if "api.github.com" in username:
            return self.get_profile_from_api_url(username)
        try:
            return self.get_user(username)
        except RemoteFetchError as user_error:
            try:
                return self.get_organization(username)
            except RemoteFetchError as organization_error:
                raise RemoteFetchError(
                    f"Failed to fetch the GitHub Profile for the username: {username}",
                    messages=[str(user_error), str(organization_error)],
                ) from organization_error

    def get_repository(self, slug: str) -> dict[str, Any]:
        result = query_rest(replace(self.options, pathname=f"repos/{slug}"))
        if not result or not result.get("full_name"):
            raise RemoteFetchError(f"GitHub Repository was not present in response for: {slug}")
        return result

    def get_repositories(self, slugs: list[str]) -> list[dict[str, Any]]:
        return gather(self.get_repository, slugs)

    def get_repositories_from_search(self, search: str) -> list[dict[str, Any]]:
        """Every repository matching ``search``, across all result pages."""
        return query_rest(
            replace(
                self.options,
                pathname="search/repositories",
                pages=self.options.pages or 0,
                search_params={"q": search},
            )
        )

    def get_repositories_from_usernames(self, usernames: list[str]) -> list[dict[str, Any]]:
        """Non-fork repositories owned by these users and organisations."""
        search = " ".join(f"user:{username}" for username in usernames)
        return [
            repo for repo in self.get_repositories_from_search(search) if not repo.get("fork")
        ]

    def get_latest_commit(self, slug: str) -> str:
        commits = query_rest(replace(self.options, pathname=f"repos/{slug}/commits"))
        sha = commits[0].get("sha") if isinstance(commits, list) and commits else None
        if not sha:
            raise RemoteFetchError(f"GitHub Commit was not present in response for: {slug}")
        return sha

    def get_members_from_organization(self, org: str) -> list[Fellow]:
        data = query_rest(
            replace(self.options, pathname=f"orgs/{org}/public_members", pages=self.options.pages or 0)
        )
        members = gather(self.get_profile_from_api_url, [m["url"] for m in data if m.get("url")])
        return self.registry.sort(self.registry.add(members))

    def get_members_from_organizations(self, orgs: list[str]) -> list[Fellow]:
        lists = gather(self.get_members_from_organization, orgs)
        return self.registry.add(lists)


class GitHubContributorsProvider(BaseProvider):
    """Contributors of a repository, minus bots, with contribution counts."""

    SOURCE_NAME = "github_contributors"

    def fetch(self, target: str) -> Backers:
        client = GitHubClient(self.options, self.registry)
        data = query_rest(
            replace(
                self.options,
                pathname=f"repos/{target}/contributors",
                pages=self.options.pages or 0,
            )
        )
        humans = [p for p in data if not is_bot(p) and p.get("url")]

        def enrich(profile: Mapping[str, Any]) -> Fellow:
            fellow = client.get_profile_from_api_url(profile["url"])
            self.registry.set_contributions(fellow, target, int(profile.get("contributions") or 0))
            self.registry.add_repo_association(fellow, Role.CONTRIBUTOR, target)
            return fellow

        contributors = self.registry.add(gather(enrich, humans))
        return Backers(contributors=self.registry.sort(contributors))


class GitHubSponsorsProvider(BaseProvider):
    """GitHub Sponsors of a user. Every sponsor is also a donor."""

    SOURCE_NAME = "github_sponsors"

    def fetch(self, target: str) -> Backers:
        try:
            profiles = self._sponsor_nodes(target)
        except RemoteFetchError as err:
            raise RemoteFetchError(
                f"Fetching GitHub Sponsors failed for username: {target}",
                messages=[str(err)],
            ) from err
        sponsors = self.registry.add([graphql_profile_fragment(p) for p in profiles])
        return Backers(sponsors=sponsors, donors=list(sponsors))

    def _sponsor_nodes(self, username: str) -> list[Mapping[str, Any]]:
        profiles: list[Mapping[str, Any]] = []
        after = self.options.after_cursor
        while True:
            variables = {"login": username, "first": self.options.size or 100, "after": after}
            data = query_graphql(SPONSORS_QUERY, replace(self.options, variables=variables))
            connection = ((data.get("user") or {}).get("sponsors")) or {}
            nodes = connection.get("nodes")
            if not isinstance(nodes, list):
                raise RemoteFetchError(
                    f"Response did not include an array of GitHub Sponsors for username: {username}"
                )
            # empty nodes are sponsors of a type the query does not select
            profiles.extend(node for node in nodes if node)
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return profiles
            after = page_info.get("endCursor")
