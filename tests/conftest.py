"""
Pytest configuration and fixtures for AppForge tests.
"""

import os
import shutil
import subprocess
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest
import yaml

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables
os.environ.setdefault("GIT_REPO_SSH", "git@example.invalid:org/reference.git")

MANIFEST = {
    "appProjects": [
        {
            "name": "infra",
            "description": "Cluster infrastructure",
            "applications": [
                {"name": "loki", "namespace": "monitoring", "path": "charts/external/grafana/loki/6.0.0"},
                {"name": "grafana", "namespace": "monitoring", "path": "charts/internal/grafana"},
            ],
        },
        {
            "name": "apps",
            "applications": [
                {"name": "oauth2-app1", "syncWave": 3},
            ],
        },
    ]
}

GIT_AVAILABLE = shutil.which("git") is not None
requires_git = pytest.mark.skipif(not GIT_AVAILABLE, reason="git executable not available")


def write_reference_tree(root: Path) -> Path:
    """Lay out a small app-of-apps repository (no .git) under root."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "app-of-apps.yaml").write_text(yaml.safe_dump(MANIFEST, sort_keys=False))

    values = root / "values"
    values.mkdir()
    (values / "loki.yaml").write_text("ingress:\n  host: logs.__DOMAIN__\n")
    (values / "grafana.yaml").write_text("host: __DOMAIN__\n")
    (values / "oauth2-app1.yaml").write_text("upstream: https://app1.__DOMAIN__\n")
    (values / "orphan.yaml").write_text("unused: true\n")

    loki = root / "charts" / "external" / "grafana" / "loki" / "6.0.0"
    loki.mkdir(parents=True)
    (loki / "Chart.yaml").write_text("name: loki\nversion: 6.0.0\n")
    tempo = root / "charts" / "external" / "grafana" / "tempo" / "1.0.0"
    tempo.mkdir(parents=True)
    (tempo / "Chart.yaml").write_text("name: tempo\nversion: 1.0.0\n")

    grafana = root / "charts" / "internal" / "grafana"
    grafana.mkdir(parents=True)
    (grafana / "Chart.yaml").write_text(
        yaml.safe_dump(
            {
                "name": "grafana",
                "description": "Dashboards for everything",
                "home": "https://grafana.com",
                "maintainers": [{"name": "Ops Team"}, {"name": "SRE"}],
            }
        )
    )
    (grafana / "icon.svg").write_text("<svg/>")
    (grafana / "README.md").write_text("# Grafana\n\nGrafana with our dashboards.\nManaged by Argo CD.\n\nMore text.\n")

    (root / "README.md").write_text("Welcome to __DOMAIN__\n")
    (root / "static").mkdir()
    (root / "static" / "logo.bin").write_bytes(b"\x89PNG\r\n\x1a\n\x00\xff__DOMAIN__\xfe")
    return root


class DirectoryCache:
    """RepositoryCache stand-in backed by a plain directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.ensure_calls = 0

    @property
    def path(self) -> Path:
        return self.root

    def ensure_repository(self, allow_stale: bool = False) -> Path:
        self.ensure_calls += 1
        return self.root

    @contextmanager
    def snapshot(self, allow_stale: bool = False) -> Iterator[Path]:
        self.ensure_calls += 1
        yield self.root

    def copy_to(self, dest: Path, allow_stale: bool = False) -> Path:
        self.ensure_calls += 1
        if dest.exists():
            shutil.rmtree(dest)
        shutil.copytree(self.root, dest, ignore=shutil.ignore_patterns(".git"))
        return dest


def git(*args: str, cwd: Path) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@localhost", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def reference_tree(tmp_path):
    """A reference repository tree without version control."""
    return write_reference_tree(tmp_path / "reference")


@pytest.fixture
def directory_cache(reference_tree):
    """Cache stand-in serving the reference tree."""
    return DirectoryCache(reference_tree)


@pytest.fixture
def git_remote(tmp_path):
    """A real git repository on branch main, usable as a clone URL."""
    if not GIT_AVAILABLE:
        pytest.skip("git executable not available")
    remote = write_reference_tree(tmp_path / "remote")
    git("init", "-q", cwd=remote)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=remote)
    git("add", "-A", cwd=remote)
    git("commit", "-q", "-m", "Initial reference", cwd=remote)
    return remote
