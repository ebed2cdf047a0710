"""Tests for CLI commands backed by the file record store."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeTransport
from typer.testing import CliRunner

from quill.cli import app
from quill.generation.orchestrator import Orchestrator
from quill.notebook.records import FileRecordStore
from quill.notebook.repository import BUILDERS, ArtifactRepository

runner = CliRunner()

_BUILDERS_YAML = """\
builders:
  - id: bld_map
    title: Mind map
    prompt: Summarise the notes as a mind map.
    type: mindmap
  - id: bld_brief
    title: Risk Brief
    prompt: Write a risk brief.
    type: text
"""


@pytest.fixture
def orchestrator(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Orchestrator]:
    monkeypatch.setenv("HOME", str(tmp_path))
    orch = Orchestrator(FakeTransport(), ArtifactRepository(FileRecordStore(tmp_path / "records")), model="m")
    with patch("quill.cli.get_orchestrator", return_value=orch):
        yield orch


def test_seed_and_list_builders(tmp_path: Path, orchestrator: Orchestrator) -> None:
    path = tmp_path / "builders.yaml"
    path.write_text(_BUILDERS_YAML)

    result = runner.invoke(app, ["seed-builders", str(path)])
    assert result.exit_code == 0, result.output
    assert "Saved 2 builders" in result.output

    result = runner.invoke(app, ["builders"])
    assert result.exit_code == 0
    assert "bld_map" in result.output
    assert "Risk Brief" in result.output


def test_seed_builders_bad_yaml(tmp_path: Path, orchestrator: Orchestrator) -> None:
    path = tmp_path / "builders.yaml"
    path.write_text("builders: [unclosed")
    result = runner.invoke(app, ["seed-builders", str(path)])
    assert result.exit_code == 1


def test_generate_from_note_files(tmp_path: Path, orchestrator: Orchestrator) -> None:
    path = tmp_path / "builders.yaml"
    path.write_text(_BUILDERS_YAML)
    runner.invoke(app, ["seed-builders", str(path)])
    result = runner.invoke(app, ["new-notebook", "Patrol"])
    assert result.exit_code == 0
    notebook_id = result.output.split()[-1]

    note = tmp_path / "site-visit.md"
    note.write_text("Nets found near the inlet.")

    result = runner.invoke(app, ["generate", notebook_id, "bld_brief", str(note)])
    assert result.exit_code == 0, result.output
    assert "Saved artifact" in result.output

    payload = orchestrator.transport.payloads[0]  # type: ignore[attr-defined]
    assert "--- Note title: site-visit ---" in payload["messages"][0]["content"]


def test_generate_unknown_builder(tmp_path: Path, orchestrator: Orchestrator) -> None:
    note = tmp_path / "n.md"
    note.write_text("x")
    result = runner.invoke(app, ["generate", "nb_1", "nope", str(note)])
    assert result.exit_code == 1


def test_seed_builders_invalid_type(tmp_path: Path, orchestrator: Orchestrator) -> None:
    path = tmp_path / "builders.yaml"
    path.write_text("builders:\n  - id: bld_diagram\n    title: Diagram\n    prompt: Draw it.\n    type: diagram\n")

    result = runner.invoke(app, ["seed-builders", str(path)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Invalid builder #1 (bld_diagram)" in result.output


def test_generate_missing_note_file(tmp_path: Path, orchestrator: Orchestrator) -> None:
    result = runner.invoke(app, ["generate", "nb_1", "bld_brief", str(tmp_path / "missing.md")])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Failed to read note" in result.output
    assert orchestrator.transport.payloads == []  # type: ignore[attr-defined]


def test_generate_with_malformed_builder_record(tmp_path: Path, orchestrator: Orchestrator) -> None:
    store = FileRecordStore(tmp_path / "records")
    asyncio.run(store.create(BUILDERS, {"id": "bld_x", "title": "X", "prompt": "p", "type": "diagram"}))
    note = tmp_path / "n.md"
    note.write_text("x")

    result = runner.invoke(app, ["generate", "nb_1", "bld_x", str(note)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Malformed builder record" in result.output
