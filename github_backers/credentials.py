"""GitHub credential checks, request headers and URLs, secret redaction.

Credentials only ever travel in the Authorization header. URLs built here
have any credential query parameters stripped, and every URL or message
that may be logged goes through ``redact_credentials`` first.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from github_backers.config import DEFAULT_API_URL, GitHubCredentials
from github_backers.errors import InvalidArgument, InvalidAuth

REDACTED = "REDACTED"
CREDENTIAL_PARAMS = ("access_token", "client_id", "client_secret")
DEFAULT_USER_AGENT = "github-backers"

_SEARCH_PARAM_PATTERN = re.compile(
    r"(&?)(access_token|client_id|client_secret)=\w+", re.IGNORECASE
)


def has_credentials(credentials: Optional[GitHubCredentials]) -> bool:
    """A token, or both halves of an OAuth app key pair."""
    if credentials is None:
        return False
    return bool(
        credentials.access_token
        or (credentials.client_id and credentials.client_secret)
    )


def validate_credentials(credentials: Optional[GitHubCredentials]) -> None:
    if not has_credentials(credentials):
        raise InvalidAuth(
            "Insufficient GitHub credentials: provide GITHUB_ACCESS_TOKEN or "
            "GITHUB_TOKEN, or both GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET"
        )


def get_auth_header(credentials: Optional[GitHubCredentials]) -> str:
    validate_credentials(credentials)
    if credentials.access_token:
        return f"token {credentials.access_token}"
    return f"Basic {credentials.client_id}:{credentials.client_secret}"


def get_headers(
    credentials: Optional[GitHubCredentials],
    headers: Optional[Mapping[str, str]] = None,
    user_agent: Optional[str] = None,
) -> dict[str, str]:
    """Headers for a GitHub API call. Caller headers win over the defaults."""
    result = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "Authorization": get_auth_header(credentials),
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
    }
    result.update(headers or {})
    return result


def remove_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() != "authorization"}


def get_search_params(credentials: Optional[GitHubCredentials]) -> dict[str, str]:
    """Credentials in query parameter form, for APIs that cannot take a header."""
    validate_credentials(credentials)
    if credentials.access_token:
        return {"access_token": credentials.access_token}
    return {
        "client_id": credentials.client_id,
        "client_secret": credentials.client_secret,
    }


def get_query_string(credentials: Optional[GitHubCredentials]) -> str:
    return urlencode(get_search_params(credentials))


def remove_search_params(params: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in params.items() if k.lower() not in CREDENTIAL_PARAMS}


def get_url(
    base: Optional[str] = None,
    pathname: Optional[str] = None,
    search_params: Optional[Mapping[str, str]] = None,
    credentials: Optional[GitHubCredentials] = None,
) -> str:
    """Compose an API URL without credentials.

    ``base`` may carry its own path (``https://example.com/api/github/``), so
    the pathname is joined segment-wise with leading and trailing slashes
    stripped from both sides.
    """
    if not base:
        base = (credentials and credentials.api_url) or DEFAULT_API_URL
    parts = urlsplit(base)

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    params.update(search_params or {})
    params = remove_search_params(params)

    path = parts.path
    if pathname:
        if "://" in pathname:
            raise InvalidArgument(
                f"Received pathname {pathname} which is not a pathname but a URL"
            )
        path = "/" + "/".join(
            segment for segment in (path.strip("/"), pathname.strip("/")) if segment
        )

    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(params), parts.fragment))


def build_authorized_url(
    base: Optional[str] = None,
    pathname: Optional[str] = None,
    search_params: Optional[Mapping[str, str]] = None,
    credentials: Optional[GitHubCredentials] = None,
) -> str:
    """``get_url`` for a request that will be authorised through its headers."""
    validate_credentials(credentials)
    return get_url(base, pathname, search_params, credentials)


def redact_search_params(value: str) -> str:
    return _SEARCH_PARAM_PATTERN.sub(rf"\1\2={REDACTED}", value)


def redact_credentials(
    value: str, credentials: Optional[GitHubCredentials] = None
) -> str:
    """Redact credential query parameters, and the literal secrets wherever they appear."""
    value = redact_search_params(value)
    if credentials is None:
        return value
    for secret in (
        credentials.access_token,
        credentials.client_id,
        credentials.client_secret,
    ):
        # a secret inside the placeholder would make redaction non-idempotent
        if secret and secret not in REDACTED:
            value = value.replace(secret, REDACTED)
    return value
