"""
Tests for environment configuration and JSON logging.
"""

import io
import json
import logging

import pytest

from github_backers import config
from github_backers.config import (
    BackersConfig,
    GitHubCredentials,
    RetryPolicy,
    load_config,
    load_credentials,
)
from github_backers.logging_config import LOGGER_NAME, JsonFormatter, configure_logging

ENV_NAMES = (
    "GITHUB_ACCESS_TOKEN",
    "GITHUB_TOKEN",
    "GITHUB_CLIENT_ID",
    "GITHUB_CLIENT_SECRET",
    "GITHUB_API_URL",
    "GITHUB_API",
    "BACKERS_RATE_LIMIT_RETRIES",
    "BACKERS_RATE_LIMIT_DELAY",
    "BACKERS_RATE_LIMIT_BACKOFF",
    "BACKERS_CONCURRENCY",
    "BACKERS_SPONSOR_CENTS_THRESHOLD",
    "BACKERS_DONOR_CENTS_THRESHOLD",
    "BACKERS_VERIFY_URLS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    return monkeypatch


class TestLoadConfig:
    """Tests for reading configuration from the environment."""

    def test_defaults(self, clean_env):
        cfg = load_config()

        assert cfg.credentials == GitHubCredentials()
        assert cfg.retry == RetryPolicy()
        assert (cfg.sponsor_cents_threshold, cfg.donor_cents_threshold) == (100, 100)
        assert cfg.concurrency == 0
        assert cfg.verify_urls is False
        assert (cfg.log_level, cfg.log_format) == ("INFO", "json")

    def test_overrides(self, clean_env):
        clean_env.setenv("GITHUB_TOKEN", "gat")
        clean_env.setenv("BACKERS_RATE_LIMIT_RETRIES", "3")
        clean_env.setenv("BACKERS_RATE_LIMIT_DELAY", "5")
        clean_env.setenv("BACKERS_CONCURRENCY", "8")
        clean_env.setenv("BACKERS_DONOR_CENTS_THRESHOLD", "0")
        clean_env.setenv("BACKERS_VERIFY_URLS", "True")

        cfg = load_config()

        assert cfg.credentials.access_token == "gat"
        assert cfg.retry == RetryPolicy(delay=5.0, max_retries=3)
        assert cfg.concurrency == 8
        assert cfg.donor_cents_threshold == 0
        assert cfg.verify_urls is True

    def test_query_options_take_overrides(self):
        cfg = BackersConfig(credentials=GitHubCredentials(access_token="gat"), donor_cents_threshold=7)

        opts = cfg.query_options(github_slug="bevry/x", donor_cents_threshold=None)

        assert opts.credentials.access_token == "gat"
        assert opts.github_slug == "bevry/x"
        assert opts.donor_cents_threshold is None
        assert opts.sponsor_cents_threshold == 100

    def test_retry_policy_exhaustion(self):
        assert RetryPolicy().exhausted(10_000) is False
        assert RetryPolicy(max_retries=2).exhausted(2) is True


class TestCredentialsFromEnvironment:
    """Tests for reading the GitHub token straight from the environment."""

    def test_empty_token_falls_through(self):
        env = {"GITHUB_ACCESS_TOKEN": "", "GITHUB_TOKEN": "gat"}
        assert load_credentials(env).access_token == "gat"

    def test_values_are_taken_as_is(self):
        creds = load_credentials({"GITHUB_TOKEN": "aws-secret://github-token"})
        assert creds.access_token == "aws-secret://github-token"

    def test_dotenv_is_loaded_before_reading(self, clean_env):
        def fake_load_dotenv():
            clean_env.setenv("GITHUB_TOKEN", "from-dotenv")

        clean_env.setattr(config, "load_dotenv", fake_load_dotenv)

        assert load_config().credentials.access_token == "from-dotenv"


class TestJsonFormatter:
    """Tests for the structured log format."""

    def test_extra_fields_are_kept(self):
        record = logging.LogRecord("backers.resolver", logging.WARNING, __file__, 1, "Source %s failed", ("x",), None)
        record.source = "thanksdev"
        record.slug = "bevry/x"

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "backers.resolver"
        assert entry["message"] == "Source x failed"
        assert (entry["source"], entry["slug"]) == ("thanksdev", "bevry/x")
        assert "exception" not in entry

    def test_url_is_redacted(self):
        record = logging.LogRecord("backers.query", logging.INFO, __file__, 1, "Waiting", (), None)
        record.url = "https://api.github.com/user?client_id=9d5&client_secret=fbd58"

        entry = json.loads(JsonFormatter().format(record))

        assert entry["url"] == "https://api.github.com/user?client_id=REDACTED&client_secret=REDACTED"


class TestConfigureLogging:
    """Tests for attaching the handler to the backers logger tree."""

    @pytest.fixture
    def restore(self):
        logger = logging.getLogger(LOGGER_NAME)
        level, handlers, propagate = logger.level, list(logger.handlers), logger.propagate
        yield
        logger.setLevel(level)
        logger.handlers[:] = handlers
        logger.propagate = propagate

    def test_text_format(self, restore):
        stream = io.StringIO()
        configure_logging("debug", "text", stream=stream)

        logging.getLogger("backers.cli").debug("Wrote to %s", "out.md")

        assert stream.getvalue() == "DEBUG backers.cli: Wrote to out.md\n"

    def test_json_is_default(self, restore):
        stream = io.StringIO()
        logger = configure_logging("warning", stream=stream)

        logging.getLogger("backers.cli").info("hidden")
        logging.getLogger("backers.cli").warning("shown")

        assert logger.propagate is False
        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["shown"]
