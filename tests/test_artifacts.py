"""
Tests for env and metadata files.
"""
import json
import os
import stat

from stackrip.artifacts import env_lines, write_env_file, write_metadata


def test_env_lines_mixed_shapes():
    env = [
        "PLAIN=1",
        {"name": "A", "value": "x=y"},
        {"Name": "B", "Value": "2"},
        {"name": "EMPTY"},
        {"value": "nameless"},
        42,
    ]
    assert env_lines(env) == ["PLAIN=1", "A=x=y", "B=2", "EMPTY="]


def test_write_env_file(tmp_path):
    p = write_env_file(tmp_path / "app.env", [{"name": "TZ", "value": "UTC"}])
    assert p.read_text() == "TZ=UTC\n"
    assert stat.S_IMODE(os.stat(p).st_mode) == 0o600


def test_write_env_file_skips_empty(tmp_path):
    assert write_env_file(tmp_path / "app.env", []) is None
    assert not (tmp_path / "app.env").exists()


def test_write_metadata(tmp_path):
    p = write_metadata(tmp_path / "app.stack.json", {"Id": 1, "Name": "app"})
    assert json.loads(p.read_text()) == {"Id": 1, "Name": "app"}
    assert stat.S_IMODE(os.stat(p).st_mode) == 0o600
