"""Rendering of resolved backers for manifests, readmes, changelogs and shoutouts.

Every format has one handler in ``_HANDLERS``; all of them share
``format_fellow`` and only differ in which display flags each category
turns on.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from github_backers.errors import InvalidFormat, UnresolvedTarget
from github_backers.fellow import Fellow
from github_backers.models import BACKER_FIELDS, FIELD_ROLES, Backers
from github_backers.providers.manifest import get_github_slug_from_package_data

Rendered = Union[dict[str, Any], str]


class RenderFormat(str, Enum):
    STRING = "string"
    JSON = "json"
    TEXT = "text"
    MARKDOWN = "markdown"
    HTML = "html"
    PACKAGE = "package"
    COPYRIGHT = "copyright"
    SHOUTOUT = "shoutout"
    RELEASE = "release"
    UPDATE = "update"


@dataclass(frozen=True)
class RenderOptions:
    format: Union[RenderFormat, str, None] = None
    package_data: Optional[Mapping[str, Any]] = None
    # str = explicit, None = from package_data, False = none
    github_slug: Union[str, bool, None] = None
    project_name: Union[str, bool, None] = None
    # None = default greeting for text, "" = no prefix
    prefix: Optional[str] = None


@dataclass(frozen=True)
class FellowDisplay:
    years: bool = False
    description: bool = False
    contributions: bool = False
    copyright: bool = False
    # Fellow attribute names to take the link from, "url" = preferred URL, None = ("url",)
    url_fields: Optional[tuple[str, ...]] = None
    github_slug: str = ""


def _link_of(fellow: Fellow, display: FellowDisplay) -> Optional[str]:
    for name in display.url_fields if display.url_fields is not None else ("url",):
        value = getattr(fellow, name, None)
        if value:
            return value
    return None


def _contributions_url(fellow: Fellow, display: FellowDisplay) -> Optional[str]:
    if display.contributions and display.github_slug and fellow.github_username:
        return (
            f"https://github.com/{display.github_slug}/commits?author={fellow.github_username}"
        )
    return None


def format_fellow(fellow: Fellow, fmt: RenderFormat, display: FellowDisplay) -> str:
    """Render one Fellow in one of the per-person formats."""
    name = fellow.display_name
    url = _link_of(fellow, display)
    years = f"{fellow.years} " if display.years and fellow.years else ""
    description = fellow.description if display.description else None
    contributions = _contributions_url(fellow, display)

    if fmt in (RenderFormat.STRING, RenderFormat.JSON, RenderFormat.PACKAGE):
        text = years + name
        if fellow.email:
            text += f" <{fellow.email}>"
        if url:
            text += f" ({url})"
        return text

    if fmt == RenderFormat.TEXT:
        text = years + name
        if url:
            text += f" ({url})"
        if description:
            text += f": {description}"
        return text

    if fmt == RenderFormat.HTML:
        label = html.escape(name)
        text = html.escape(years) + (
            f'<a href="{html.escape(url, quote=True)}">{label}</a>' if url else label
        )
        if description:
            text += f": {html.escape(description)}"
        if contributions:
            text += f' 👉 <a href="{html.escape(contributions, quote=True)}">view contributions</a>'
        return text

    if fmt in (RenderFormat.MARKDOWN, RenderFormat.COPYRIGHT):
        text = years + (f"[{name}]({url})" if url else name)
        if description:
            text += f": {description}"
        if contributions:
            text += f" 👉 [view contributions]({contributions})"
        if display.copyright:
            text = f"Copyright © {text}"
        return text

    raise InvalidFormat(f"Invalid format for a single backer: {fmt}")


def _resolve_slug(opts: RenderOptions) -> str:
    if opts.github_slug is False:
        return ""
    if isinstance(opts.github_slug, str) and opts.github_slug:
        return opts.github_slug
    if opts.package_data:
        try:
            return get_github_slug_from_package_data(opts.package_data)
        except UnresolvedTarget:
            return ""
    return ""


def _resolve_project_name(opts: RenderOptions) -> str:
    if opts.project_name is False:
        return ""
    if isinstance(opts.project_name, str) and opts.project_name:
        return opts.project_name
    data = opts.package_data or {}
    return data.get("title") or data.get("name") or ""


def _greeting(project: str, role: str) -> str:
    return f"Thank you to {project + ' ' if project else ''}{role} ♡ "


def _category_display(name: str, fmt: RenderFormat, slug: str) -> FellowDisplay:
    display = FellowDisplay(github_slug=slug)
    links = () if fmt in (RenderFormat.STRING, RenderFormat.JSON) else ("github_url", "url")
    if name == "author":
        return replace(display, years=True)
    if name == "authors":
        return replace(display, years=True, description=True)
    if name == "maintainers":
        return replace(display, description=True, contributions=True, url_fields=links)
    if name == "contributors":
        return replace(display, contributions=True, url_fields=links)
    if name in ("funders", "sponsors"):
        return replace(display, description=True)
    return display


def _render_categories(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> dict[str, Any]:
    slug = _resolve_slug(opts)
    project = _resolve_project_name(opts)
    result: dict[str, Any] = {}
    for name, fellows in backers.items():
        if not fellows:
            continue
        display = _category_display(name, fmt, slug)
        entries = [format_fellow(fellow, fmt, display) for fellow in fellows]
        if fmt == RenderFormat.TEXT:
            prefix = opts.prefix if opts.prefix is not None else _greeting(project, FIELD_ROLES[name].value)
            entries = [prefix + entry for entry in entries]
        if name == "author" and fmt in (RenderFormat.STRING, RenderFormat.JSON):
            result[name] = ", ".join(entries)
        else:
            result[name] = entries
    return result


def _render_package(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> dict[str, Any]:
    merged = dict(opts.package_data or {})
    rendered = _render_categories(backers, RenderFormat.STRING, opts)
    for name in BACKER_FIELDS:
        if rendered.get(name):
            merged[name] = rendered[name]
        else:
            merged.pop(name, None)
    return merged


def _render_copyright(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> dict[str, Any]:
    display = FellowDisplay(years=True, copyright=True, github_slug=_resolve_slug(opts))
    result: dict[str, Any] = {}
    for name in ("author", "authors"):
        fellows = getattr(backers, name)
        if fellows:
            result[name] = [format_fellow(f, RenderFormat.COPYRIGHT, display) for f in fellows]
    return result


def _render_shoutout(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> str:
    project = _resolve_project_name(opts)
    display = FellowDisplay(github_slug=_resolve_slug(opts))
    lines = [
        _greeting(project, FIELD_ROLES[name].value) + format_fellow(f, RenderFormat.TEXT, display)
        for name in ("contributors", "funders", "sponsors")
        for f in getattr(backers, name)
    ]
    return "\n".join(lines)


def _thanks_line(label: str, fellows: list[Fellow], display: FellowDisplay) -> str:
    if not fellows:
        return ""
    names = ", ".join(format_fellow(f, RenderFormat.MARKDOWN, display) for f in fellows)
    return f"- Thank you to the {label}: {names}"


def _render_release(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> str:
    display = FellowDisplay(github_slug=_resolve_slug(opts))
    lines = [
        _thanks_line("funders", backers.funders, display),
        _thanks_line("sponsors", backers.sponsors, display),
    ]
    return "\n".join(line for line in lines if line)


def _render_update(backers: Backers, fmt: RenderFormat, opts: RenderOptions) -> str:
    return _thanks_line("sponsors", backers.sponsors, FellowDisplay(github_slug=_resolve_slug(opts)))


_HANDLERS: dict[RenderFormat, Callable[[Backers, RenderFormat, RenderOptions], Rendered]] = {
    RenderFormat.STRING: _render_categories,
    RenderFormat.JSON: _render_categories,
    RenderFormat.TEXT: _render_categories,
    RenderFormat.MARKDOWN: _render_categories,
    RenderFormat.HTML: _render_categories,
    RenderFormat.PACKAGE: _render_package,
    RenderFormat.COPYRIGHT: _render_copyright,
    RenderFormat.SHOUTOUT: _render_shoutout,
    RenderFormat.RELEASE: _render_release,
    RenderFormat.UPDATE: _render_update,
}


def render_backers(backers: Backers, opts: RenderOptions) -> Rendered:
    """Render ``backers`` in ``opts.format``. Pure: nothing is fetched or mutated."""
    try:
        fmt = RenderFormat(opts.format)
    except ValueError as exc:
        raise InvalidFormat(f"Invalid format: {opts.format}") from exc
    return _HANDLERS[fmt](backers, fmt, opts)
