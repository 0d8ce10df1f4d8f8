"""github-backers: aggregate the backers of a GitHub project.

Combines the package manifest, the GitHub REST and GraphQL APIs, GitHub
Sponsors, ThanksDev and OpenCollective into one deduplicated set of
authors, maintainers, contributors, funders, sponsors and donors, and
renders it as data, text, markdown, HTML or back into the manifest.
"""

from github_backers.config import BackersQueryOptions, GitHubCredentials, QueryOptions
from github_backers.errors import (
    BackersError,
    InvalidArgument,
    InvalidAuth,
    InvalidFormat,
    RemoteFetchError,
    UnresolvedTarget,
)
from github_backers.fellow import Fellow
from github_backers.models import BACKER_FIELDS, Backers, Role
from github_backers.registry import FellowRegistry
from github_backers.render import RenderFormat, RenderOptions, render_backers
from github_backers.resolver import (
    get_backers,
    get_backers_from_repositories,
    get_backers_from_search,
    get_backers_from_usernames,
)

__all__ = [
    "BACKER_FIELDS",
    "Backers",
    "BackersError",
    "BackersQueryOptions",
    "Fellow",
    "FellowRegistry",
    "GitHubCredentials",
    "InvalidArgument",
    "InvalidAuth",
    "InvalidFormat",
    "QueryOptions",
    "RemoteFetchError",
    "RenderFormat",
    "RenderOptions",
    "Role",
    "UnresolvedTarget",
    "get_backers",
    "get_backers_from_repositories",
    "get_backers_from_search",
    "get_backers_from_usernames",
    "render_backers",
]
