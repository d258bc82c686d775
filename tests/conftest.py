"""
Pytest configuration and shared fixtures.
"""
import json
import pytest
import tempfile
from pathlib import Path
from stackrip.types import Config


@pytest.fixture
def temp_config_file():
    """Create a temporary configuration file for testing."""
    toml_content = """
version = 1

[portainer]
source = "api"
url = "https://portainer.test:9443"
api_key = "ptr_testkey"
api_key_header = "X-API-Key"
verify_tls = true
volume = "pdata"

[backup]
dir = "/tmp/stackrip-test"
simple = true
simple_prefix = "s_"
timestamps = false
envs = true
keep_count = 3
min_free_bytes = 0

[docker]
image = "busybox:1.36"
compose_candidates = "compose.yml docker-compose.yml"

[retry]
http_retries = 1
http_backoff_sec = 0.5
docker_retries = 0
docker_backoff_sec = 0

[logging]
file = ""
level = "DEBUG"

[output]
report = true
show_changes = true
run_summary_dir = "/tmp/stackrip-test-logs"
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.toml', delete=False) as f:
        f.write(toml_content)
        f.flush()
        yield Path(f.name)

    Path(f.name).unlink(missing_ok=True)


@pytest.fixture
def sample_config(tmp_path):
    """Create a sample configuration object for testing."""
    return Config(
        source="api",
        portainer_url="https://portainer.test:9443",
        api_key="ptr_testkey",
        backup_dir=tmp_path / "backups",
        keep_count=7,
        min_free_bytes=0,
        http_retries=2,
        http_backoff_sec=0,
        docker_retries=2,
        docker_backoff_sec=0,
        log_file="",
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """Record backoff sleeps instead of waiting."""
    sleeps = []
    monkeypatch.setattr("time.sleep", lambda s: sleeps.append(s))
    return sleeps


def stack_row(sid, name, env=None, **extra):
    """A Portainer stack object the way the API (and portainer.db) lays it out."""
    row = {
        "Id": sid,
        "Name": name,
        "Type": 2,
        "EndpointId": 1,
        "EntryPoint": "docker-compose.yml",
        "Env": env or [],
        "Status": 1,
        "ProjectPath": f"/data/compose/{sid}",
    }
    row.update(extra)
    return row


def compact(obj) -> str:
    return json.dumps(obj, separators=(",", ":"))
