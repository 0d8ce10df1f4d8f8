"""CLI entry point: fetch backers, render them, write them out.

Arguments are read in segments separated by ``--``. Each segment ends with
one resolve, render and write action. Query flags (slug, package, offline,
usernames, thresholds) carry over to the following segments, render flags
(write, format) start over. Backers are fetched once and reused until the
slug or package changes.
"""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from github_backers.config import BackersConfig, load_config
from github_backers.errors import BackersError, InvalidArgument, UnresolvedTarget
from github_backers.logging_config import configure_logging
from github_backers.models import Backers
from github_backers.providers.manifest import (
    get_github_slug_from_package_data,
    get_github_slug_from_url,
    get_package_data,
)
from github_backers.render import RenderFormat, RenderOptions, render_backers
from github_backers.resolver import get_backers

logger = logging.getLogger("backers.cli")

SEPARATOR = "--"
PACKAGE_FILE = "package.json"

# str = explicit, True/None = autodetect, False = disabled
Setting = Union[str, bool, None]


@dataclass
class QueryState:
    slug: Setting = None
    package_path: Setting = None
    package_data: Optional[dict] = None
    offline: bool = False
    github_sponsors_username: Setting = None
    opencollective_username: Setting = None
    thanksdev_github_username: Setting = None
    sponsor_cents_threshold: Optional[int] = None
    donor_cents_threshold: Optional[int] = None
    result: Optional[Backers] = field(default=None, repr=False)


@dataclass
class RenderState:
    write: Setting = False
    format: Optional[str] = None


def _auto(value: Any) -> bool:
    return value is None or value is True


def _add_username_flag(parser: argparse.ArgumentParser, dashed: str, camel: str, what: str) -> None:
    dest = dashed.replace("-", "_")
    parser.add_argument(
        f"--{dashed}", f"--{camel}",
        dest=dest, nargs="?", const=True,
        help=f"Instead of autodetecting, use this username for fetching backers from {what}",
    )
    parser.add_argument(
        f"--no-{dashed}", f"--no-{camel}",
        dest=dest, action="store_const", const=False,
        help=f"Do not fetch backers from {what}",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="github-backers",
        description=(
            "Fetch backers (authors, maintainers, contributors, funders, sponsors, donors) "
            "and output or write them as package.json, json, string, text, markdown or html. "
            "Separate several actions with --; query options carry over, --write and --format do not."
        ),
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--package", nargs="?", const=True,
        help="The package.json file to retrieve the data for and from",
    )
    parser.add_argument("--no-package", dest="package", action="store_const", const=False)
    parser.add_argument(
        "--slug", nargs="?", const=True,
        help="The GitHub repository slug, defaults to the one in <package> or the git remote",
    )
    parser.add_argument("--no-slug", dest="slug", action="store_const", const=False)
    parser.add_argument(
        "--offline", action=argparse.BooleanOptionalAction,
        help="Skip remote updates and only use the data from <package>",
    )
    _add_username_flag(parser, "github-sponsors-username", "githubSponsorsUsername", "GitHub Sponsors")
    _add_username_flag(parser, "opencollective-username", "opencollectiveUsername", "OpenCollective")
    _add_username_flag(parser, "thanksdev-github-username", "thanksdevGithubUsername", "ThanksDev")
    parser.add_argument(
        "--sponsor-cents-threshold", "--sponsorCentsThreshold",
        dest="sponsor_cents_threshold", type=int,
        help="Minimum monthly cents to be considered a financial sponsor (default 100)",
    )
    parser.add_argument(
        "--donor-cents-threshold", "--donorCentsThreshold",
        dest="donor_cents_threshold", type=int,
        help="Minimum lifetime cents to be considered a financial donor (default 100)",
    )
    parser.add_argument(
        "--write", nargs="?", const=True,
        help="The path to update, defaults to stdout, or <package> when given without a path",
    )
    parser.add_argument("--no-write", dest="write", action="store_const", const=False)
    parser.add_argument(
        "--format", choices=[f.value for f in RenderFormat],
        help="The output format, autodetected from the write path when omitted",
    )
    return parser


def split_segments(argv: list[str]) -> list[list[str]]:
    """Split arguments on ``--``. There is always at least one segment."""
    segments: list[list[str]] = [[]]
    for arg in argv:
        if arg == SEPARATOR:
            segments.append([])
        else:
            segments[-1].append(arg)
    # a trailing -- does not ask for another action
    if len(segments) > 1 and not segments[-1]:
        segments.pop()
    return segments


def apply_arguments(args: argparse.Namespace, query: QueryState, render: RenderState) -> None:
    values = vars(args)
    if "slug" in values:
        query.slug = values.pop("slug")
        query.package_data = None
        query.result = None
    if "package" in values:
        query.package_path = values.pop("package")
        query.package_data = None
        query.result = None
    for name in ("write", "format"):
        if name in values:
            setattr(render, name, values.pop(name))
    for name, value in values.items():
        setattr(query, name, value)


def git_remote_slug() -> Optional[str]:
    """Slug of the ``origin`` remote of the current directory, if it is on GitHub."""
    try:
        proc = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True, text=True, check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        logger.debug("No git remote to detect the GitHub slug from")
        return None
    return get_github_slug_from_url(proc.stdout.strip())


def detect_format(write_path: Any) -> RenderFormat:
    if isinstance(write_path, str):
        if write_path.endswith(PACKAGE_FILE):
            return RenderFormat.PACKAGE
        if write_path.endswith(("shoutout.txt", "shoutouts.txt")):
            return RenderFormat.SHOUTOUT
        for suffix, fmt in (
            (".json", RenderFormat.STRING),
            (".txt", RenderFormat.TEXT),
            (".md", RenderFormat.MARKDOWN),
            (".html", RenderFormat.HTML),
        ):
            if write_path.endswith(suffix):
                return fmt
    return RenderFormat.STRING


def read_package(path: str) -> dict:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise InvalidArgument(f"Could not read package data from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidArgument(f"Package data in {path} is not an object")
    return data


def resolve_query(query: QueryState, config: BackersConfig) -> None:
    """Fill in autodetected slug and package data."""
    if _auto(query.slug):
        query.slug = git_remote_slug()
    if isinstance(query.package_path, str):
        if query.package_data is None:
            query.package_data = read_package(query.package_path)
    elif _auto(query.package_path):
        if Path(PACKAGE_FILE).is_file():
            query.package_path = PACKAGE_FILE
            query.package_data = read_package(PACKAGE_FILE)
        elif isinstance(query.slug, str) and query.slug and not query.offline:
            query.package_data = get_package_data(query.slug, config.query_options())
            query.package_path = PACKAGE_FILE
    if _auto(query.slug) and query.package_data:
        try:
            query.slug = get_github_slug_from_package_data(query.package_data)
        except UnresolvedTarget as exc:
            logger.warning("%s", exc)


def fetch(query: QueryState, config: BackersConfig) -> Backers:
    overrides: dict[str, Any] = {
        "github_slug": query.slug if isinstance(query.slug, str) else (False if query.slug is False else None),
        "package_data": query.package_data,
        "offline": query.offline,
        "github_sponsors_username": None if query.github_sponsors_username is True else query.github_sponsors_username,
        "opencollective_username": None if query.opencollective_username is True else query.opencollective_username,
        "thanksdev_github_username": None if query.thanksdev_github_username is True else query.thanksdev_github_username,
    }
    if query.sponsor_cents_threshold is not None:
        overrides["sponsor_cents_threshold"] = query.sponsor_cents_threshold
    if query.donor_cents_threshold is not None:
        overrides["donor_cents_threshold"] = query.donor_cents_threshold
    return get_backers(config.query_options(**overrides))


def write_output(output: Any, write_path: Any) -> None:
    if not isinstance(write_path, str):
        print(output if isinstance(output, str) else json.dumps(output, indent=2, ensure_ascii=False))
        return
    path = Path(write_path)
    if isinstance(output, str):
        if write_path.endswith(".json"):
            logger.warning(
                "Writing to %s as string... this is probably not intended, and you'll have to do some post-processing...",
                write_path,
            )
        path.write_text(output, encoding="utf-8")
    else:
        if not write_path.endswith(".json"):
            logger.warning(
                "Writing to %s as JSON... this is probably not intended, and you'll have to do some post-processing...",
                write_path,
            )
        path.write_text(json.dumps(output, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote to %s", write_path)


def run_action(query: QueryState, render: RenderState, config: BackersConfig) -> None:
    """Resolve, render and write once."""
    resolve_query(query, config)
    if query.result is None:
        query.result = fetch(query, config)

    write_path = render.write
    if _auto(write_path):
        write_path = query.package_path if isinstance(query.package_path, str) else PACKAGE_FILE
    fmt = RenderFormat(render.format) if render.format else detect_format(write_path)
    slug = query.slug if isinstance(query.slug, str) and query.slug else None
    output = render_backers(
        query.result,
        RenderOptions(format=fmt, package_data=query.package_data, github_slug=slug),
    )
    write_output(output, write_path)


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    config = load_config()
    configure_logging(config.log_level, config.log_format)
    parser = build_parser()

    query = QueryState()
    try:
        for segment in split_segments(sys.argv[1:] if argv is None else argv):
            render = RenderState()
            apply_arguments(parser.parse_args(segment), query, render)
            run_action(query, render, config)
    except BackersError as exc:
        logger.error("%s", exc)
        return 1
    return 0
