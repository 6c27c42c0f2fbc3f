"""Ports for the external collaborators driven by the entry point pipeline.

Every collaborator has the same shape: it receives the current build state of
the entry point being processed and returns an updated copy. The engine never
looks inside; it only threads the result back into the graph.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from distpack.domain.model import EntryPointBuild


class BuildStep(Protocol):
    """Contract implemented by every collaborator stage."""

    async def __call__(self, build: EntryPointBuild, /) -> EntryPointBuild: ...


class StylesheetRenderer(BuildStep, Protocol):
    """Attach rendered stylesheet paths; raise ``RenderError`` on malformed input."""


class TemplateRenderer(BuildStep, Protocol):
    """Attach rendered template paths; raise ``RenderError`` on malformed input."""


class SourceTransformer(BuildStep, Protocol):
    """Stage sources with rendered templates and stylesheets inlined."""


class Compiler(BuildStep, Protocol):
    """Produce the canonical module output and type declarations.

    Failures raise ``CompileError`` carrying diagnostic locations.
    """


class Bundler(BuildStep, Protocol):
    """Derive the remaining module-format variants from the canonical output."""


class SourceMapRelocator(BuildStep, Protocol):
    """Rewrite source map paths of the staged bundles."""
