"""Configuration: credentials, query options and the environment adapter.

The core never reads the process environment. ``load_config()`` is the
single place that does, at the process boundary (the CLI), and everything
below it receives explicit dataclasses. Values come from environment
variables or a local .env file (python-dotenv).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

from dotenv import load_dotenv

if TYPE_CHECKING:
    from github_backers.query import QueryPool
    from github_backers.registry import FellowRegistry

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_CENTS_THRESHOLD = 100

# str = explicit username, None = autodetect, False = disabled
UsernameOption = Union[str, bool, None]


@dataclass(frozen=True)
class GitHubCredentials:
    access_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    api_url: Optional[str] = None  # None = https://api.github.com


@dataclass(frozen=True)
class RetryPolicy:
    """What to do when a remote answers 429 Too Many Requests."""

    delay: float = 60.0
    max_retries: Optional[int] = None  # None = retry forever
    backoff: float = 1.0  # 1.0 = fixed delay

    def wait_for(self, attempt: int) -> float:
        return self.delay * (self.backoff ** attempt)

    def exhausted(self, attempt: int) -> bool:
        return self.max_retries is not None and attempt >= self.max_retries


@dataclass(frozen=True)
class QueryOptions:
    concurrency: int = 0  # 0 = unbounded
    pool: Optional["QueryPool"] = None
    credentials: GitHubCredentials = field(default_factory=GitHubCredentials)
    session: Any = None  # requests.Session-like, None = module level requests
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = 30.0

    # GraphQL
    result_field: Optional[str] = None
    variables: Optional[Mapping[str, Any]] = None
    after_cursor: Optional[str] = None

    # REST paging: any of these set turns paging on
    size: Optional[int] = None
    page: Optional[int] = None
    pages: Optional[int] = None

    # REST request
    url: Optional[str] = None
    pathname: Optional[str] = None
    search_params: Optional[Mapping[str, str]] = None
    headers: Optional[Mapping[str, str]] = None
    user_agent: Optional[str] = None
    method: str = "GET"
    body: Any = None


@dataclass(frozen=True)
class BackersQueryOptions(QueryOptions):
    github_slug: UsernameOption = None
    package_data: Union[Mapping[str, Any], bool, None] = None
    github_sponsors_username: UsernameOption = None
    opencollective_username: UsernameOption = None
    thanksdev_github_username: UsernameOption = None
    offline: bool = False
    sponsor_cents_threshold: Optional[int] = DEFAULT_CENTS_THRESHOLD
    donor_cents_threshold: Optional[int] = DEFAULT_CENTS_THRESHOLD
    verify_urls: bool = False
    registry: Optional["FellowRegistry"] = None


@dataclass(frozen=True)
class BackersConfig:
    credentials: GitHubCredentials
    concurrency: int = 0
    sponsor_cents_threshold: int = DEFAULT_CENTS_THRESHOLD
    donor_cents_threshold: int = DEFAULT_CENTS_THRESHOLD
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    verify_urls: bool = False
    log_level: str = "INFO"
    log_format: str = "json"

    def query_options(self, **overrides: Any) -> BackersQueryOptions:
        """Seed a fresh options bag for one resolution call."""
        values: dict[str, Any] = {
            "credentials": self.credentials,
            "concurrency": self.concurrency,
            "retry": self.retry,
            "sponsor_cents_threshold": self.sponsor_cents_threshold,
            "donor_cents_threshold": self.donor_cents_threshold,
            "verify_urls": self.verify_urls,
        }
        values.update(overrides)
        return BackersQueryOptions(**values)


def load_credentials(environ: Optional[Mapping[str, str]] = None) -> GitHubCredentials:
    """Read GitHub credentials from the environment. Missing values stay None."""
    env = os.environ if environ is None else environ
    return GitHubCredentials(
        access_token=env.get("GITHUB_ACCESS_TOKEN") or env.get("GITHUB_TOKEN") or None,
        client_id=env.get("GITHUB_CLIENT_ID") or None,
        client_secret=env.get("GITHUB_CLIENT_SECRET") or None,
        api_url=env.get("GITHUB_API_URL") or env.get("GITHUB_API") or None,
    )


def load_config() -> BackersConfig:
    """Load configuration from environment variables (and .env if present)."""
    load_dotenv()

    retries_raw = os.environ.get("BACKERS_RATE_LIMIT_RETRIES", "")
    retry = RetryPolicy(
        delay=float(os.environ.get("BACKERS_RATE_LIMIT_DELAY", "60")),
        max_retries=int(retries_raw) if retries_raw else None,
        backoff=float(os.environ.get("BACKERS_RATE_LIMIT_BACKOFF", "1")),
    )

    return BackersConfig(
        credentials=load_credentials(),
        concurrency=int(os.environ.get("BACKERS_CONCURRENCY", "0")),
        sponsor_cents_threshold=int(
            os.environ.get("BACKERS_SPONSOR_CENTS_THRESHOLD", str(DEFAULT_CENTS_THRESHOLD))
        ),
        donor_cents_threshold=int(
            os.environ.get("BACKERS_DONOR_CENTS_THRESHOLD", str(DEFAULT_CENTS_THRESHOLD))
        ),
        retry=retry,
        verify_urls=os.environ.get("BACKERS_VERIFY_URLS", "").lower() == "true",
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json").lower(),
    )
