"""Compiler and bundler stages backed by external commands.

Commands are argument vectors whose items may contain ``{placeholder}`` fields;
they are run without a shell. Available placeholders:

``entry_file``, ``source_root``, ``base_path``, ``stage_dir``, ``out_dir``,
``flat_module_file``, ``module_id``, ``umd_id``, ``amd_id`` and, for bundle
commands only, ``input``, ``output`` and ``format``.

The compile command must write ``<out_dir>/<flat_module_file>.js`` (the flat
ES2015 module) and ``<out_dir>/<flat_module_file>.d.ts``; a
``<flat_module_file>.metadata.json`` next to them is picked up when present.
Bundle commands must write the file given as ``{output}``.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import string
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final

from distpack.config.errors import ConfigurationError
from distpack.domain.errors import BundleError, CompileError, Diagnostic
from distpack.domain.model import ModuleFormat

from .renderers import staged_source_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from distpack.domain.model import EntryPointBuild

log = getLogger(__name__)

BUILD_PLACEHOLDERS: Final[frozenset[str]] = frozenset(
    {
        "entry_file",
        "source_root",
        "base_path",
        "stage_dir",
        "out_dir",
        "flat_module_file",
        "module_id",
        "umd_id",
        "amd_id",
    }
)
BUNDLE_PLACEHOLDERS: Final[frozenset[str]] = BUILD_PLACEHOLDERS | {"input", "output", "format"}

# tsc style: src/foo.ts(12,5): error TS2304: Cannot find name 'x'.
_PAREN_DIAGNOSTIC = re.compile(
    r"^(?P<file>[^\s(][^(]*?)\((?P<line>\d+),(?P<column>\d+)\):\s*(?P<message>.+)$"
)
# pretty style: src/foo.ts:12:5 - error TS2304: Cannot find name 'x'.
_DASH_DIAGNOSTIC = re.compile(
    r"^(?P<file>[^\s:][^:]*?):(?P<line>\d+):(?P<column>\d+)\s+-\s+(?P<message>.+)$"
)
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")

# bundle formats derived from another bundle instead of the compiler output
_BUNDLE_INPUT: dict[ModuleFormat, ModuleFormat] = {ModuleFormat.UMD_MIN: ModuleFormat.UMD}


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    output: str


async def run_command(argv: Sequence[str], *, cwd: Path | None = None) -> CommandResult:
    """Run ``argv`` and capture stdout and stderr interleaved."""

    log.debug("Running %s (cwd=%s)", " ".join(argv), cwd)
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    stdout, _ = await process.communicate()
    output = stdout.decode("utf-8", errors="replace")
    returncode = process.returncode if process.returncode is not None else -1
    return CommandResult(argv=tuple(argv), returncode=returncode, output=output)


def command_placeholders(command: Iterable[str]) -> frozenset[str]:
    formatter = string.Formatter()
    names: set[str] = set()
    for item in command:
        for _, field_name, _, _ in formatter.parse(item):
            if field_name is not None:
                names.add(field_name)
    return frozenset(names)


def validate_command(command: Sequence[str], allowed: frozenset[str], *, label: str) -> None:
    if not command:
        raise ConfigurationError(f"The {label} command is empty")
    unknown = sorted(command_placeholders(command) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown placeholder(s) in the {label} command: {', '.join(unknown)}"
        )


def render_command(command: Sequence[str], values: Mapping[str, str]) -> list[str]:
    return [item.format_map(values) for item in command]


def build_placeholders(build: EntryPointBuild) -> dict[str, str]:
    entry_point = build.entry_point
    entry_file = entry_point.entry_file_path
    if build.sources:
        staged = staged_source_path(build, entry_file)
        if staged.exists():
            entry_file = staged
    return {
        "entry_file": str(entry_file),
        "source_root": str(entry_file.parent),
        "base_path": str(entry_point.base_path),
        "stage_dir": str(build.stage_dir),
        "out_dir": str(build.out_dir),
        "flat_module_file": entry_point.flat_module_file,
        "module_id": entry_point.module_id,
        "umd_id": entry_point.umd_id,
        "amd_id": entry_point.amd_id,
    }


def parse_diagnostics(output: str, *, cwd: Path | None = None) -> list[Diagnostic]:
    """Extract located diagnostics from compiler output.

    Lines mentioning an error without a location become location-less diagnostics.
    """

    diagnostics: list[Diagnostic] = []
    for raw_line in output.splitlines():
        line = _ANSI_ESCAPE.sub("", raw_line).strip()
        if not line:
            continue
        match = _PAREN_DIAGNOSTIC.match(line) or _DASH_DIAGNOSTIC.match(line)
        if match is None:
            if "error" in line.lower():
                diagnostics.append(Diagnostic(None, None, None, line))
            continue
        path = Path(match.group("file").strip())
        if cwd is not None and not path.is_absolute():
            path = cwd / path
        diagnostics.append(
            Diagnostic(
                file=path,
                line=int(match.group("line")),
                column=int(match.group("column")),
                message=match.group("message").strip(),
            )
        )
    return diagnostics


@dataclass(frozen=True, slots=True)
class CommandCompiler:
    command: tuple[str, ...]
    cwd: Path | None = None

    def __post_init__(self) -> None:
        validate_command(self.command, BUILD_PLACEHOLDERS, label="compile")

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        flat = build.entry_point.flat_module_file
        build.out_dir.mkdir(parents=True, exist_ok=True)
        argv = render_command(self.command, build_placeholders(build))
        cwd = self.cwd or build.entry_point.base_path
        try:
            result = await run_command(argv, cwd=cwd)
        except OSError as exc:
            raise CompileError(f"Cannot run compiler {argv[0]}: {exc}") from exc

        if result.returncode != 0:
            raise CompileError(
                f"Compilation of {build.module_id} failed with exit code {result.returncode}",
                parse_diagnostics(result.output, cwd=cwd),
            )

        es2015 = build.out_dir / f"{flat}.js"
        typings = build.out_dir / f"{flat}.d.ts"
        missing = [path for path in (es2015, typings) if not path.is_file()]
        if missing:
            raise CompileError(
                f"Compiler reported success but did not write {', '.join(map(str, missing))}"
            )
        metadata = build.out_dir / f"{flat}.metadata.json"
        return build.evolve(
            es2015=es2015,
            typings=typings,
            metadata=metadata if metadata.is_file() else None,
        )


@dataclass(frozen=True, slots=True)
class CommandBundler:
    """Write every configured module format into the staging directory.

    Without a ``fesm2015`` command the compiler output is copied as is, since it
    already is a flat ES2015 module.
    """

    commands: Mapping[ModuleFormat, tuple[str, ...]] = field(
        default_factory=dict[ModuleFormat, tuple[str, ...]]
    )
    cwd: Path | None = None

    def __post_init__(self) -> None:
        for module_format, command in self.commands.items():
            validate_command(command, BUNDLE_PLACEHOLDERS, label=f"{module_format} bundle")
        for module_format, source_format in _BUNDLE_INPUT.items():
            if module_format in self.commands and source_format not in self.commands:
                raise ConfigurationError(
                    f"The {module_format} bundle is derived from {source_format}, "
                    f"which has no bundle command"
                )

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild:
        if build.es2015 is None or not build.es2015.is_file():
            raise BundleError(f"No compiled ES2015 module to bundle for {build.module_id}")

        bundles: dict[ModuleFormat, Path] = {}
        base_values = build_placeholders(build)
        cwd = self.cwd or build.entry_point.base_path
        for module_format in ModuleFormat:
            output = build.staged_bundle(module_format)
            output.parent.mkdir(parents=True, exist_ok=True)
            command = self.commands.get(module_format)
            if command is None:
                if module_format is ModuleFormat.FESM2015:
                    shutil.copyfile(build.es2015, output)
                    bundles[module_format] = output
                continue

            source = build.es2015
            if module_format in _BUNDLE_INPUT:
                source = bundles[_BUNDLE_INPUT[module_format]]
            values = {
                **base_values,
                "input": str(source),
                "output": str(output),
                "format": str(module_format),
            }
            argv = render_command(command, values)
            try:
                result = await run_command(argv, cwd=cwd)
            except OSError as exc:
                raise BundleError(f"Cannot run bundler {argv[0]}: {exc}") from exc
            if result.returncode != 0:
                raise BundleError(
                    f"Writing {module_format} bundle of {build.module_id} failed "
                    f"with exit code {result.returncode}:\n{result.output.strip()}"
                )
            if not output.is_file():
                raise BundleError(f"Bundler did not write {output}")
            log.debug("Wrote %s bundle %s", module_format, output)
            bundles[module_format] = output

        return build.evolve(bundles=bundles)
