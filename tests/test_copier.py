"""
Tests for the container copy and host-side verification.
"""
import hashlib
from pathlib import Path

import pytest

import stackrip.copier as copier
from stackrip.copier import (
    EXIT_COPY_FAILED,
    NO_CHECKSUM,
    compose_candidates,
    container_script,
    copy_command,
    copy_compose,
    docker_cmd,
    parse_report,
    partial_path,
    verify_copy,
)
from stackrip.rotation import rotate
from stackrip.types import Config, CopyError, Stack

COMPOSE = b"services:\n  web:\n    image: nginx:1.25\n"


def _stack(sid=3, project_path="/data/compose/3", entry_point="docker-compose.yml"):
    return Stack(sid, "web", project_path, entry_point, [], {})


def test_compose_candidates_entry_point_first_and_deduplicated():
    cfg = Config()
    assert compose_candidates(_stack(), cfg) == [
        "/data/compose/3/docker-compose.yml",
        "/data/compose/3/docker-compose.yaml",
    ]


def test_compose_candidates_custom_entry_point():
    cfg = Config(compose_candidates=["compose.yml"])
    stack = _stack(project_path="/data/compose/8", entry_point="deploy/stack.yml", sid=8)
    assert compose_candidates(stack, cfg) == [
        "/data/compose/8/deploy/stack.yml",
        "/data/compose/8/compose.yml",
    ]


def test_compose_candidates_without_project_path():
    cfg = Config(compose_dir_prefix="/data/compose/")
    assert compose_candidates(_stack(project_path=None), cfg)[0] == "/data/compose/3/docker-compose.yml"


def test_container_script():
    script = container_script(["/data/compose/3/a b.yml", "/data/compose/3/c.yml"], "/backups/web/web_1.yml", 3)
    assert "for c in '/data/compose/3/a b.yml' /data/compose/3/c.yml; do" in script
    assert "break" in script
    assert "exit 2" in script
    assert "cp \"$src\" /backups/web/web_1.yml || exit 3" in script
    assert NO_CHECKSUM in script
    assert script.rstrip().endswith('echo "$checksum $size"')


def test_docker_cmd(tmp_path):
    cfg = Config(volume="pdata", backup_dir=tmp_path, image="alpine:3.19")
    cmd = docker_cmd(cfg, "true")
    assert cmd[:3] == ["docker", "run", "--rm"]
    assert "pdata:/data:ro" in cmd
    assert f"{tmp_path.resolve()}:/backups:rw" in cmd
    assert cmd[-4:] == ["alpine:3.19", "sh", "-c", "true"]


@pytest.mark.parametrize("output,expected", [
    ("abc123 42\n", ("abc123", 42)),
    ("Unable to find image 'alpine:3.19' locally\r\nPull complete\nabc 7\n", ("abc", 7)),
    ("NO_CHECKSUM 9", ("NO_CHECKSUM", 9)),
    ("garbage", ("garbage", None)),
    ("", (None, None)),
])
def test_parse_report(output, expected):
    assert parse_report(output) == expected


def test_verify_copy_checksum(tmp_path):
    target = tmp_path / "web.yml"
    target.write_bytes(COMPOSE)
    good = hashlib.sha256(COMPOSE).hexdigest()
    assert verify_copy(target, good, len(COMPOSE)) is None
    assert "checksum mismatch" in verify_copy(target, "0" * 64, len(COMPOSE))


def test_verify_copy_size_fallback(tmp_path):
    target = tmp_path / "web.yml"
    target.write_bytes(COMPOSE)
    assert verify_copy(target, NO_CHECKSUM, len(COMPOSE)) is None
    assert "size mismatch" in verify_copy(target, NO_CHECKSUM, 1)


def test_verify_copy_rejects_empty_file(tmp_path):
    target = tmp_path / "web.yml"
    target.write_bytes(b"")
    assert "empty copy" in verify_copy(target, NO_CHECKSUM, 0)
    assert "empty copy" in verify_copy(target, hashlib.sha256(b"").hexdigest(), 0)
    assert "missing" in verify_copy(tmp_path / "missing.yml", None, None)


class FakeDocker:
    """Stands in for util.run: plays back outcomes, writing the staged copy on success."""

    def __init__(self, target: Path, outcomes):
        self.staged = partial_path(target)
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, cmd, capture=False, **kw):
        self.calls += 1
        rc, kind = self.outcomes.pop(0)
        if rc == EXIT_COPY_FAILED:
            self.staged.write_bytes(COMPOSE[:5])
        if rc != 0:
            return rc, kind
        if kind == "empty":
            self.staged.write_bytes(b"")
            return 0, f"{hashlib.sha256(b'').hexdigest()} 0\n"
        self.staged.write_bytes(COMPOSE)
        if kind == "good":
            return 0, f"{hashlib.sha256(COMPOSE).hexdigest()} {len(COMPOSE)}\n"
        if kind == "nochecksum":
            return 0, f"NO_CHECKSUM {len(COMPOSE)}\n"
        return 0, f"{'f' * 64} {len(COMPOSE)}\n"


def _setup(tmp_path, monkeypatch, outcomes, retries=2):
    cfg = Config(backup_dir=tmp_path, docker_retries=retries, docker_backoff_sec=0)
    target = tmp_path / "web" / "web_1.yml"
    target.parent.mkdir()
    fake = FakeDocker(target, outcomes)
    monkeypatch.setattr(copier, "run", fake)
    return cfg, target, fake


def test_copy_compose_first_try(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(0, "good")])
    outcome = copy_compose(_stack(), cfg, "web", target)
    assert outcome.size == len(COMPOSE)
    assert outcome.checksum == hashlib.sha256(COMPOSE).hexdigest()
    assert outcome.attempts == 1
    assert no_sleep == []


def test_copy_compose_without_container_checksum(tmp_path, monkeypatch, no_sleep):
    cfg, target, _ = _setup(tmp_path, monkeypatch, [(0, "nochecksum")])
    outcome = copy_compose(_stack(), cfg, "web", target)
    assert outcome.checksum is None


def test_copy_compose_retries_after_failure_and_mismatch(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(125, "daemon error"), (0, "bad"), (0, "good")])
    outcome = copy_compose(_stack(), cfg, "web", target)
    assert outcome.attempts == 3
    assert fake.calls == 3
    assert no_sleep == [0, 0]


def test_copy_compose_gives_up(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(0, "bad")] * 3)
    with pytest.raises(CopyError, match="after 3 attempts"):
        copy_compose(_stack(), cfg, "web", target)
    assert fake.calls == 3


def test_copy_compose_missing_file_is_not_retried(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(2, "compose file not found for stack id 3")])
    with pytest.raises(CopyError, match="not found"):
        copy_compose(_stack(), cfg, "web", target)
    assert fake.calls == 1
    assert no_sleep == []


def test_copy_compose_moves_verified_copy_into_place(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(0, "good")])
    copy_compose(_stack(), cfg, "web", target)
    assert target.read_bytes() == COMPOSE
    assert not fake.staged.exists()


def test_copy_command_writes_to_staging_file(tmp_path):
    cfg = Config(backup_dir=tmp_path)
    target = tmp_path / "web" / "web_1.yml"
    cmd = copy_command(_stack(), cfg, "web", target)
    assert "/backups/web/web_1.yml.partial" in cmd[-1]


def test_copy_compose_rejects_empty_source(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(0, "empty")] * 3)
    with pytest.raises(CopyError, match="empty copy"):
        copy_compose(_stack(), cfg, "web", target)
    assert not target.exists()
    assert not fake.staged.exists()


def test_copy_compose_failure_removes_partial_file(tmp_path, monkeypatch, no_sleep):
    cfg, target, fake = _setup(tmp_path, monkeypatch, [(EXIT_COPY_FAILED, "cp: short write"), (0, "bad")], retries=1)
    good = target.parent / "web_0.yml"
    good.write_bytes(COMPOSE)
    with pytest.raises(CopyError, match="checksum mismatch"):
        copy_compose(_stack(), cfg, "web", target)
    assert sorted(p.name for p in target.parent.iterdir()) == ["web_0.yml"]
    assert rotate(target.parent, "web", 1) == []
    assert good.exists()


def test_copy_compose_failure_keeps_previous_file_without_timestamps(tmp_path, monkeypatch, no_sleep):
    cfg, target, _ = _setup(tmp_path, monkeypatch, [(0, "bad")], retries=0)
    target.write_bytes(b"services: {}\n")
    with pytest.raises(CopyError):
        copy_compose(_stack(), cfg, "web", target)
    assert target.read_bytes() == b"services: {}\n"
