"""
Pytest fixtures for github-backers tests.

No test touches the network: every request goes through a FakeSession
passed in the query options, which records the call and answers from a
route table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import pytest

from github_backers.config import BackersQueryOptions, GitHubCredentials, RetryPolicy
from github_backers.registry import FellowRegistry

_NO_JSON = object()


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        text: Optional[str] = None,
        reason: str = "OK",
        invalid_json: bool = False,
    ):
        self.status_code = status_code
        self._payload = _NO_JSON if invalid_json else payload
        self.text = text if text is not None else ""
        self.reason = reason

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is _NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


@dataclass
class Call:
    method: str
    url: str
    kwargs: dict = field(default_factory=dict)


Answer = Union[FakeResponse, Exception, Callable[["Call"], Any]]


class FakeSession:
    """requests.Session stand-in answering from ``routes``.

    ``routes`` is a list of ``(needle, answer)`` pairs; the first needle
    contained in ``"METHOD url"`` wins. An answer may be a FakeResponse,
    an exception to raise, or a callable taking the Call. A list answer
    is consumed one item per request. Unmatched requests get a 404.
    """

    def __init__(self, routes: Optional[list[tuple[str, Any]]] = None):
        self.routes = list(routes or [])
        self.calls: list[Call] = []
        self.closed = False

    def request(self, method, url, timeout=None, **kwargs):
        call = Call(method, url, kwargs)
        self.calls.append(call)
        key = f"{method} {url}"
        for needle, answer in self.routes:
            if needle in key:
                if isinstance(answer, list):
                    answer = answer.pop(0)
                if callable(answer) and not isinstance(answer, FakeResponse):
                    answer = answer(call)
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return FakeResponse(404, {"message": "Not Found"}, reason="Not Found")

    def close(self):
        self.closed = True

    def urls(self, method: Optional[str] = None) -> list[str]:
        return [c.url for c in self.calls if method is None or c.method == method]


def json_response(payload: Any, status_code: int = 200) -> FakeResponse:
    return FakeResponse(status_code, payload)


def graphql_response(data: Any) -> FakeResponse:
    return FakeResponse(200, {"data": data})


@pytest.fixture
def credentials():
    return GitHubCredentials(access_token="gat")


@pytest.fixture
def registry():
    return FellowRegistry()


@pytest.fixture
def make_options(credentials):
    """Options bound to a FakeSession, with waits on 429 shortened to nothing."""

    def factory(session: Optional[FakeSession] = None, **overrides) -> BackersQueryOptions:
        values = {
            "credentials": credentials,
            "session": session if session is not None else FakeSession(),
            "retry": RetryPolicy(delay=0, max_retries=3),
        }
        values.update(overrides)
        return BackersQueryOptions(**values)

    return factory
