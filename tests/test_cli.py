"""
Tests for the command line entry point.
"""

import json

import pytest

from github_backers import cli
from github_backers.config import BackersConfig, GitHubCredentials
from github_backers.fellow import Fellow
from github_backers.models import Backers
from github_backers.render import RenderFormat


@pytest.fixture
def calls(monkeypatch, tmp_path):
    """Run the CLI in ``tmp_path`` with a recording get_backers."""
    recorded = []

    def fake_get_backers(opts):
        recorded.append(opts)
        return Backers(author=[Fellow(name="Ann", email="ann@example.com")])

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda *args: None)
    monkeypatch.setattr(cli, "load_config", lambda: BackersConfig(credentials=GitHubCredentials()))
    monkeypatch.setattr(cli, "git_remote_slug", lambda: None)
    monkeypatch.setattr(cli, "get_backers", fake_get_backers)
    return recorded


class TestArguments:
    """Tests for argument segments and flag handling."""

    @pytest.mark.parametrize(
        "argv,expected",
        [
            ([], [[]]),
            (["--offline"], [["--offline"]]),
            (["--offline", "--", "--format=text"], [["--offline"], ["--format=text"]]),
            (["--offline", "--"], [["--offline"]]),
            (["--", "--"], [[], []]),
        ],
    )
    def test_split_segments(self, argv, expected):
        assert cli.split_segments(argv) == expected

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("package.json", RenderFormat.PACKAGE),
            ("sub/package.json", RenderFormat.PACKAGE),
            ("backers.json", RenderFormat.STRING),
            ("shoutouts.txt", RenderFormat.SHOUTOUT),
            ("notes.txt", RenderFormat.TEXT),
            ("README.md", RenderFormat.MARKDOWN),
            ("index.html", RenderFormat.HTML),
            (False, RenderFormat.STRING),
            (None, RenderFormat.STRING),
        ],
    )
    def test_detect_format(self, path, expected):
        assert cli.detect_format(path) == expected

    def test_apply_arguments(self):
        parser = cli.build_parser()
        query, render = cli.QueryState(), cli.RenderState()

        cli.apply_arguments(
            parser.parse_args([
                "--no-opencollective-username",
                "--githubSponsorsUsername=balupton",
                "--sponsor-cents-threshold=5",
                "--write=out.md",
            ]),
            query,
            render,
        )

        assert query.opencollective_username is False
        assert query.github_sponsors_username == "balupton"
        assert query.sponsor_cents_threshold == 5
        assert query.thanksdev_github_username is None
        assert render.write == "out.md"

    def test_slug_resets_cached_result(self):
        query = cli.QueryState(package_data={"name": "x"}, result=Backers())

        cli.apply_arguments(cli.build_parser().parse_args(["--slug=bevry/x"]), query, cli.RenderState())

        assert query.slug == "bevry/x"
        assert query.package_data is None
        assert query.result is None

    def test_unknown_format_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--format=yaml"])


class TestMain:
    """Tests for whole CLI runs."""

    def test_segments_share_query_flags(self, calls, tmp_path, capsys):
        (tmp_path / "package.json").write_text(json.dumps({"name": "x", "repository": "github:bevry/x"}), encoding="utf-8")

        code = cli.main(["--offline", "--write=out.json", "--", "--format=markdown"])

        assert code == 0
        assert len(calls) == 1
        opts = calls[0]
        assert (opts.github_slug, opts.offline) == ("bevry/x", True)
        assert opts.package_data == {"name": "x", "repository": "github:bevry/x"}
        written = json.loads((tmp_path / "out.json").read_text(encoding="utf-8"))
        assert written == {"author": "Ann <ann@example.com>"}
        assert json.loads(capsys.readouterr().out) == {"author": ["Ann"]}

    def test_slug_change_fetches_again(self, calls, capsys):
        code = cli.main(["--offline", "--no-package", "--slug=bevry/a", "--", "--slug=bevry/b"])

        assert code == 0
        assert [opts.github_slug for opts in calls] == ["bevry/a", "bevry/b"]
        assert all(opts.offline for opts in calls)

    def test_thresholds_and_usernames_forwarded(self, calls, capsys):
        cli.main([
            "--no-package", "--no-slug",
            "--donor-cents-threshold=250",
            "--no-thanksdev-github-username",
            "--opencollective-username",
        ])

        opts = calls[0]
        assert opts.donor_cents_threshold == 250
        assert opts.sponsor_cents_threshold == 100
        assert opts.thanksdev_github_username is False
        assert opts.opencollective_username is None
        assert opts.github_slug is False

    def test_write_defaults_to_package(self, calls, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "x", "author": "Old"}), encoding="utf-8")

        assert cli.main(["--offline", "--write"]) == 0

        assert json.loads((tmp_path / "package.json").read_text(encoding="utf-8")) == {
            "name": "x",
            "author": "Ann <ann@example.com>",
        }

    def test_category_output_written_as_json(self, calls, tmp_path):
        assert cli.main(["--no-package", "--no-slug", "--write=backers.txt"]) == 0

        assert (tmp_path / "backers.txt").read_text(encoding="utf-8") == json.dumps(
            {"author": ["Thank you to author ♡ Ann"]}, indent=2, ensure_ascii=False
        ) + "\n"

    def test_shoutout_written_as_text(self, calls, tmp_path, monkeypatch):
        monkeypatch.setattr(
            cli,
            "get_backers",
            lambda opts: Backers(contributors=[Fellow(name="Ann")]),
        )

        assert cli.main(["--no-package", "--no-slug", "--write=shoutout.txt"]) == 0

        assert (tmp_path / "shoutout.txt").read_text(encoding="utf-8") == "Thank you to contributor ♡ Ann"

    def test_unreadable_package_exits_with_error(self, calls):
        assert cli.main(["--package=missing.json"]) == 1
        assert calls == []
