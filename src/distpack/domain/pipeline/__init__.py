"""Transforms and the pipelines composed from them."""

from __future__ import annotations

from .composer import Pipeline, compose
from .stages import (
    CLEAN,
    COMPILE,
    RELOCATE_SOURCE_MAPS,
    RENDER_STYLESHEETS,
    RENDER_TEMPLATES,
    STANDARD_STAGES,
    TRANSFORM_SOURCES,
    WRITE_BUNDLES,
    WRITE_PACKAGE,
    clean_transform,
    entry_point_pipeline,
    entry_point_stage,
    require_entry_point_in_progress,
    require_package,
)
from .transform import SideEffect, Transform, TransformFn, transform

__all__ = [
    "CLEAN",
    "COMPILE",
    "RELOCATE_SOURCE_MAPS",
    "RENDER_STYLESHEETS",
    "RENDER_TEMPLATES",
    "STANDARD_STAGES",
    "TRANSFORM_SOURCES",
    "WRITE_BUNDLES",
    "WRITE_PACKAGE",
    "Pipeline",
    "SideEffect",
    "Transform",
    "TransformFn",
    "clean_transform",
    "compose",
    "entry_point_pipeline",
    "entry_point_stage",
    "require_entry_point_in_progress",
    "require_package",
    "transform",
]
