"""Fixtures for CLI interface tests."""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from civicalert.cli import cli


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a civicalert project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


@pytest.fixture
def cli_city(cli_in_project: tuple[CliRunner, Path]) -> tuple[CliRunner, dict[str, str]]:
    """A project with an admin, two residents, a location and a tag. Returns (runner, ids)."""
    runner, _ = cli_in_project

    def invoke_json(*args: str) -> dict[str, str]:
        result = runner.invoke(cli, [*args, "--json"])
        assert result.exit_code == 0, result.output
        return json.loads(result.output)

    location = invoke_json("location", "add", "Kibagabaga")
    ids = {
        "location": location["id"],
        "admin": invoke_json("user", "add", "ana@city.example", "--name", "Ana Admin", "--role", "ADMIN")["id"],
        "resident": invoke_json("user", "add", "rita@home.example", "--name", "Rita Resident")["id"],
        "other": invoke_json("user", "add", "omar@home.example")["id"],
        "tag": invoke_json("tag", "create", "pothole")["id"],
    }
    return runner, ids


def _extract_id(create_output: str) -> str:
    """Extract an ID from 'Created test-abc123: Title' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()
