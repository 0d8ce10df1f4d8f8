"""
Tests for the request engine: paging, rate limiting, error collection.
"""

import threading
import time

import pytest
import requests

from conftest import FakeResponse, FakeSession, graphql_response, json_response
from github_backers import query
from github_backers.config import RetryPolicy
from github_backers.errors import RemoteFetchError
from github_backers.query import (
    QueryPool,
    fetch_ok,
    gather,
    query_graphql,
    query_json,
    query_rest,
    query_text,
)


def paged_source(items):
    """Answer ``?page=N&per_page=M`` requests from ``items``."""

    def answer(call):
        params = dict(p.split("=") for p in call.url.split("?", 1)[1].split("&"))
        page, size = int(params["page"]), int(params["per_page"])
        return json_response(items[(page - 1) * size : page * size])

    return answer


class TestQueryRest:
    """Tests for REST queries and paging."""

    def test_paging_flattens_in_order(self, make_options):
        session = FakeSession([("GET", paged_source([1, 2, 3, 4, 5]))])
        opts = make_options(session, pathname="repos/a/b/contributors", size=2)

        assert query_rest(opts) == [1, 2, 3, 4, 5]
        assert len(session.calls) == 3

    def test_pages_cap(self, make_options):
        session = FakeSession([("GET", paged_source(list(range(10))))])
        opts = make_options(session, pathname="x", size=2, pages=2)

        assert query_rest(opts) == [0, 1, 2, 3]
        assert len(session.calls) == 2

    def test_search_items_unwrapped(self, make_options):
        session = FakeSession([("GET", json_response({"total_count": 1, "items": [{"full_name": "a/b"}]}))])
        opts = make_options(session, pathname="search/repositories", pages=0)

        assert query_rest(opts) == [{"full_name": "a/b"}]

    def test_paging_rejects_non_array(self, make_options):
        session = FakeSession([("GET", json_response({"login": "bevry"}))])
        opts = make_options(session, pathname="x", size=10)

        with pytest.raises(RemoteFetchError, match="did not return an array"):
            query_rest(opts)

    def test_without_paging_returns_payload(self, make_options):
        session = FakeSession([("GET", json_response({"full_name": "a/b"}))])
        opts = make_options(session, pathname="repos/a/b")

        assert query_rest(opts) == {"full_name": "a/b"}
        assert session.calls[0].url == "https://api.github.com/repos/a/b"
        assert session.calls[0].kwargs["headers"]["Authorization"] == "token gat"

    def test_error_payload_collects_messages(self, make_options):
        session = FakeSession([("GET", json_response({"message": "Bad credentials"}, 401))])
        opts = make_options(session, pathname="user")

        with pytest.raises(RemoteFetchError) as info:
            query_rest(opts)
        assert "failed with status 401" in info.value.messages[0]
        assert "Bad credentials" in info.value.messages
        assert info.value.url == "https://api.github.com/user"

    def test_invalid_json_still_fails(self, make_options):
        session = FakeSession([("GET", FakeResponse(200, invalid_json=True))])
        opts = make_options(session, pathname="user")

        with pytest.raises(RemoteFetchError) as info:
            query_rest(opts)
        assert isinstance(info.value.__cause__, ValueError)

    def test_transport_error_wrapped(self, make_options):
        session = FakeSession([("GET", requests.ConnectionError("refused"))])
        opts = make_options(session, pathname="user")

        with pytest.raises(RemoteFetchError) as info:
            query_rest(opts)
        assert isinstance(info.value.__cause__, requests.ConnectionError)


class TestRateLimit:
    """Tests for waiting out 429 responses."""

    def test_retries_after_delay(self, make_options, monkeypatch):
        waits = []
        monkeypatch.setattr(query.time, "sleep", waits.append)
        session = FakeSession([("GET", [FakeResponse(429, reason="Too Many Requests"), json_response({"ok": 1})])])
        opts = make_options(session, pathname="user", retry=RetryPolicy())

        assert query_rest(opts) == {"ok": 1}
        assert waits == [60.0]
        assert len(session.calls) == 2

    def test_backoff(self):
        policy = RetryPolicy(delay=10, backoff=2)
        assert [policy.wait_for(n) for n in range(3)] == [10, 20, 40]

    def test_gives_up_at_cap(self, make_options, monkeypatch):
        monkeypatch.setattr(query.time, "sleep", lambda _: None)
        session = FakeSession([("GET", lambda call: FakeResponse(429, reason="Too Many Requests"))])
        opts = make_options(session, pathname="user", retry=RetryPolicy(delay=1, max_retries=2))

        with pytest.raises(RemoteFetchError, match="still rate limited"):
            query_rest(opts)
        assert len(session.calls) == 3


class TestQueryGraphql:
    """Tests for GraphQL queries."""

    def test_posts_query_and_variables(self, make_options):
        session = FakeSession([("POST https://api.github.com/graphql", graphql_response({"user": {"login": "bevry"}}))])
        opts = make_options(session, result_field="user", variables={"login": "bevry"})

        assert query_graphql("query($login: String!) { user(login: $login) { login } }", opts) == {"login": "bevry"}
        body = session.calls[0].kwargs["json"]
        assert body["variables"] == {"login": "bevry"}
        assert "$login" in body["query"]

    def test_graphql_errors_raise(self, make_options):
        session = FakeSession([("POST", json_response({"errors": [{"message": "Could not resolve"}]}))])

        with pytest.raises(RemoteFetchError, match="Could not resolve"):
            query_graphql("{ viewer { login } }", make_options(session))

    def test_non_object_payload_raises(self, make_options):
        session = FakeSession([("POST", json_response([{"login": "bevry"}]))])

        with pytest.raises(RemoteFetchError, match="did not return an object"):
            query_graphql("{ viewer { login } }", make_options(session))


class TestUnauthenticated:
    """Tests for plain JSON and text fetches and liveness probes."""

    def test_query_json_needs_no_credentials(self, make_options):
        session = FakeSession([("GET", json_response([1]))])
        opts = make_options(session, credentials=None)

        assert query_json("https://opencollective.com/x/members.json", opts) == [1]

    def test_query_text_fails_on_status(self, make_options):
        session = FakeSession()

        with pytest.raises(RemoteFetchError, match="404"):
            query_text("https://raw.githubusercontent.com/a/b/HEAD/x", make_options(session))

    def test_fetch_ok_falls_back_to_get(self, make_options):
        session = FakeSession([("HEAD", FakeResponse(405)), ("GET", FakeResponse(200))])

        assert fetch_ok("https://example.com", make_options(session)) is True
        assert [c.method for c in session.calls] == ["HEAD", "GET"]

    def test_fetch_ok_never_raises(self, make_options):
        session = FakeSession([("HEAD", requests.ConnectionError("down"))])

        assert fetch_ok("https://example.com", make_options(session)) is False


class TestConcurrency:
    """Tests for the pool and gather."""

    def test_gather_keeps_order(self):
        assert gather(lambda n: n * 2, [3, 1, 2]) == [6, 2, 4]

    def test_gather_propagates_first_error(self):
        def boom(n):
            if n == 2:
                raise RemoteFetchError("no")
            return n

        with pytest.raises(RemoteFetchError):
            gather(boom, [1, 2, 3])

    def test_pool_bounds_in_flight(self):
        pool = QueryPool(2)
        lock = threading.Lock()
        state = {"now": 0, "peak": 0}

        def work(_):
            with pool.slot():
                with lock:
                    state["now"] += 1
                    state["peak"] = max(state["peak"], state["now"])
                time.sleep(0.01)
                with lock:
                    state["now"] -= 1

        gather(work, range(8))
        assert state["peak"] <= 2

    def test_unbounded_pool(self):
        with QueryPool(0).slot():
            pass
