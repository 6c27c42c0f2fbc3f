"""Copy-based stylesheet and template renderers plus the inlining source transformer.

Only plain ``.css`` stylesheets and ``.html`` templates are understood. Rendered
files are written below ``<stage_dir>/rendered`` and staged sources below
``<stage_dir>/sources``, both mirroring the layout of the entry point source root.
"""

from __future__ import annotations

import base64
import json
import mimetypes
import re
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final

from distpack.domain.errors import RenderError
from distpack.domain.model import CssUrlMode
from distpack.domain.sources import SCRIPT_SUFFIXES, iter_source_files

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from distpack.domain.model import EntryPointBuild

log = getLogger(__name__)

STYLESHEET_SUFFIXES: Final[frozenset[str]] = frozenset({".css", ".scss", ".sass", ".less", ".styl"})
TEMPLATE_SUFFIXES: Final[frozenset[str]] = frozenset({".html"})

_CSS_URL = re.compile(r"""url\(\s*(?P<quote>['"]?)(?P<url>[^'")]+)(?P=quote)\s*\)""")
_TEMPLATE_URL = re.compile(r"""templateUrl\s*:\s*(?P<quote>['"`])(?P<url>[^'"`]+)(?P=quote)""")
_STYLE_URLS = re.compile(r"""styleUrls\s*:\s*\[(?P<urls>[^\]]*)\]""")
_QUOTED = re.compile(r"""(['"`])(?P<value>[^'"`]+)\1""")


def rendered_path(build: EntryPointBuild, source: Path) -> Path:
    return build.stage_dir / "rendered" / source.relative_to(build.entry_point.source_root)


def staged_source_path(build: EntryPointBuild, source: Path) -> Path:
    return build.stage_dir / "sources" / source.relative_to(build.entry_point.source_root)


def _owned_files(build: EntryPointBuild, suffixes: Iterable[str]) -> list[Path]:
    wanted = frozenset(suffixes)
    root = build.entry_point.source_root
    if build.source_files:
        candidates = sorted(build.source_files)
    else:
        candidates = list(iter_source_files(root))
    return [path for path in candidates if path.suffix in wanted and path.is_relative_to(root)]


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RenderError(f"Cannot read {path}: {exc}") from exc


def _check_balanced(path: Path, text: str) -> None:
    depth = 0
    for line_number, line in enumerate(text.splitlines(), start=1):
        depth += line.count("{") - line.count("}")
        if depth < 0:
            raise RenderError(f"{path}:{line_number}: unexpected '}}'")
    if depth:
        raise RenderError(f"{path}: {depth} unclosed block(s)")


def _inline_urls(path: Path, text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        url = match.group("url").strip()
        if url.startswith(("data:", "http:", "https:", "//", "/", "#")):
            return match.group(0)
        asset = (path.parent / url.split("?", 1)[0].split("#", 1)[0]).resolve()
        if not asset.is_file():
            raise RenderError(f"{path}: url({url}) does not resolve to a file")
        mime_type = mimetypes.guess_type(asset.name)[0] or "application/octet-stream"
        encoded = base64.b64encode(asset.read_bytes()).decode("ascii")
        return f"url('data:{mime_type};base64,{encoded}')"

    return _CSS_URL.sub(_replace, text)


@dataclass(frozen=True, slots=True)
class CopyStylesheetRenderer:
    """Validate plain CSS, optionally inline ``url()`` assets, and copy it to staging."""

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        rendered: dict[Path, Path] = {}
        css_url = build.entry_point.options.css_url
        for source in _owned_files(build, STYLESHEET_SUFFIXES):
            if source.suffix != ".css":
                raise RenderError(f"No renderer for {source.suffix} stylesheets: {source}")
            text = _read_text(source)
            _check_balanced(source, text)
            if css_url is CssUrlMode.INLINE:
                text = _inline_urls(source, text)
            target = rendered_path(build, source)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            rendered[source] = target
        log.debug("Rendered %s stylesheet(s) of %s", len(rendered), build.module_id)
        return build.evolve(stylesheets=rendered)


@dataclass(frozen=True, slots=True)
class CopyTemplateRenderer:
    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        rendered: dict[Path, Path] = {}
        for source in _owned_files(build, TEMPLATE_SUFFIXES):
            target = rendered_path(build, source)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(_read_text(source), encoding="utf-8")
            rendered[source] = target
        log.debug("Rendered %s template(s) of %s", len(rendered), build.module_id)
        return build.evolve(templates=rendered)


def _lookup(rendered: Mapping[Path, Path], owner: Path, url: str, kind: str) -> str:
    source = (owner.parent / url).resolve()
    target = rendered.get(source)
    if target is None:
        raise RenderError(f"{owner}: {kind} {url} was not rendered")
    return target.read_text(encoding="utf-8")


@dataclass(frozen=True, slots=True)
class InliningSourceTransformer:
    """Stage script sources with ``templateUrl``/``styleUrls`` replaced by inline content."""

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        staged: list[Path] = []
        for source in _owned_files(build, SCRIPT_SUFFIXES):
            text = _read_text(source)
            text = self._inline(build, source, text)
            target = staged_source_path(build, source)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            staged.append(target)
        log.debug("Staged %s source file(s) of %s", len(staged), build.module_id)
        return build.evolve(sources=tuple(staged))

    @staticmethod
    def _inline(build: EntryPointBuild, source: Path, text: str) -> str:
        def _template(match: re.Match[str]) -> str:
            content = _lookup(build.templates, source, match.group("url"), "template")
            return f"template: {json.dumps(content)}"

        def _styles(match: re.Match[str]) -> str:
            urls = [quoted.group("value") for quoted in _QUOTED.finditer(match.group("urls"))]
            contents = [_lookup(build.stylesheets, source, url, "stylesheet") for url in urls]
            return f"styles: [{', '.join(json.dumps(content) for content in contents)}]"

        text = _TEMPLATE_URL.sub(_template, text)
        return _STYLE_URLS.sub(_styles, text)
