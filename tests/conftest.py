"""Pytest configuration and fixtures."""

import sqlite3
import sys
from pathlib import Path
from typing import Dict, Optional

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chunkexport.lib.connections import close_all_connections  # noqa: E402


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "manifest.json"


@pytest.fixture(autouse=True)
def clean_connections():
    """Ensure the connection registry is empty before and after each test."""
    close_all_connections()
    yield
    close_all_connections()


POSTS: Dict[int, Optional[bytes]] = {
    1: bytes(range(256)) + b"\x00\x00tail",
    2: "héllo wörld – ünïcode ✓".encode("utf-8") * 20,
    3: None,
    4: b"",
}


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """SQLite database with a posts table holding binary and text content."""
    path = tmp_path / "posts.db"
    con = sqlite3.connect(str(path))
    con.execute("CREATE TABLE posts (id INTEGER PRIMARY KEY, content BLOB, body TEXT)")
    for post_id, content in POSTS.items():
        body = content.decode("utf-8") if post_id == 2 else None
        con.execute("INSERT INTO posts VALUES (?, ?, ?)", (post_id, content, body))
    con.commit()
    con.close()
    return path


@pytest.fixture
def posts() -> Dict[int, Optional[bytes]]:
    return POSTS
