"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ssh_book.config import StoreConfig
from ssh_book.storage import RecordStore


@pytest.fixture
def runner() -> CliRunner:
    """Provide Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory (not created until the first save)."""
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> RecordStore:
    """Record store pointed at the temporary data directory."""
    return RecordStore(StoreConfig(data_dir=data_dir))


@pytest.fixture
def sample_data() -> dict:
    """Provide a sample document: two groups, three servers."""
    return {
        "groups": [
            {"id": "group-prod", "name": "Production"},
            {"id": "group-dev", "name": "Development"},
        ],
        "servers": [
            {
                "id": "server-web",
                "name": "WebServer",
                "username": "admin",
                "host": "192.168.1.10",
                "port": 22,
                "auth_type": "password",
                "auth_info": "",
                "group_id": "group-prod",
            },
            {
                "id": "server-db",
                "name": "DbServer",
                "username": "root",
                "host": "192.168.1.20",
                "port": 2222,
                "auth_type": "key",
                "auth_info": "/home/user/.ssh/id_rsa",
                "group_id": "group-prod",
            },
            {
                "id": "server-sandbox",
                "name": "Sandbox",
                "username": "dev",
                "host": "dev.example.com",
                "port": 22,
                "auth_type": "password",
                "auth_info": "",
                "group_id": "group-dev",
            },
        ],
    }


@pytest.fixture
def data_json_file(data_dir: Path, sample_data: dict) -> Path:
    """Create data.json with the sample document."""
    data_dir.mkdir(parents=True, exist_ok=True)
    data_file = data_dir / "data.json"
    data_file.write_text(json.dumps(sample_data, ensure_ascii=False, indent=2), encoding="utf-8")
    return data_file
