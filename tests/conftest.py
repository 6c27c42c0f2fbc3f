from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from distpack.domain.graph import BuildGraph

from tests.support.builds import PACKAGE_NAME, make_package, write_project

if TYPE_CHECKING:
    from pathlib import Path

    from distpack.domain.model import Package


@pytest.fixture(autouse=True)
def _clear_distpack_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DISTPACK_LOG_LEVEL", "DISTPACK_WORKING_DIRECTORY", "DISTPACK_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / "widgets"
    root.mkdir()
    return root


@pytest.fixture
def package(project_root: Path) -> Package:
    return make_package(project_root, secondaries=("testing",))


@pytest.fixture
def project_on_disk(project_root: Path) -> Path:
    """Primary plus ``testing`` (imports the primary) and ``forms`` (standalone)."""

    return write_project(
        project_root,
        secondaries={
            "testing": f"import {{ core }} from '{PACKAGE_NAME}';\nexport const fake = core;\n",
            "forms": "export const form = 1;\n",
        },
    )


@pytest.fixture
def graph() -> BuildGraph:
    return BuildGraph()


@pytest.fixture
def caplog_info(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.INFO, logger="distpack")
    return caplog
