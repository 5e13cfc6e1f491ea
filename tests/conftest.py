from __future__ import annotations

import os
import sys
import textwrap
from pathlib import Path
from typing import Iterator, List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from widget_runtime.controller import SandboxController
from widget_runtime.types import BundleHandle


def make_bundle(source: str, name: str = "Foo", widget_id: str = "", stylesheet: str = "") -> BundleHandle:
    return BundleHandle(
        script=textwrap.dedent(source),
        stylesheet=stylesheet,
        component_name=name,
        component_id=widget_id or f"com.example.{name}",
    )


class CommitRecorder:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, str]] = []

    def __call__(self, datasource_key: str, items_json: str) -> None:
        self.calls.append((datasource_key, items_json))


@pytest.fixture()
def commits() -> CommitRecorder:
    return CommitRecorder()


@pytest.fixture()
def controller(commits: CommitRecorder) -> Iterator[SandboxController]:
    ctrl = SandboxController(on_datasource_commit=commits)
    try:
        yield ctrl
    finally:
        ctrl.destroy()
