"""Adapters implementing the pipeline ports with files and external commands."""

from __future__ import annotations

from .commands import CommandBundler, CommandCompiler, parse_diagnostics, run_command
from .renderers import CopyStylesheetRenderer, CopyTemplateRenderer, InliningSourceTransformer
from .sourcemaps import SourceMapRelocator
from .watcher import PollingFileWatcher
from .write_package import write_package_transform

__all__ = [
    "CommandBundler",
    "CommandCompiler",
    "CopyStylesheetRenderer",
    "CopyTemplateRenderer",
    "InliningSourceTransformer",
    "PollingFileWatcher",
    "SourceMapRelocator",
    "parse_diagnostics",
    "run_command",
    "write_package_transform",
]
