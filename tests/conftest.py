"""
Shared test fixtures and configuration.
"""

import os
import tempfile
from pathlib import Path

import pytest

# Isolate config and log output before any bpm module is imported.
_SANDBOX = Path(tempfile.mkdtemp(prefix="bpm-tests-"))
_CONFIG = _SANDBOX / "config.yml"
_CONFIG.write_text(f"store_dir: {_SANDBOX / 'store'}\nlog_level: warn\n", encoding="utf-8")
os.environ["BPM_CONFIG"] = str(_CONFIG)

from bpm.ledger import Ledger  # noqa: E402
from bpm.meta import RepositorySet, parse_manifest  # noqa: E402


def write_manifest(repo_path: Path, body: str) -> Path:
    repo_path.mkdir(parents=True, exist_ok=True)
    manifest = repo_path / "packages.mri"
    manifest.write_text(body, encoding="utf-8")
    return manifest


@pytest.fixture
def make_pkg(tmp_path: Path):
    """Create a package contents directory holding the given binaries."""
    def _make(name: str, version: str, binaries=("bin",)) -> str:
        pkg_dir = tmp_path / "pkgs" / f"{name}-{version}"
        for b in binaries:
            target = pkg_dir / b
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(f"#!/bin/sh\necho {name} {version}\n", encoding="utf-8")
            target.chmod(0o755)
        return str(pkg_dir)
    return _make


@pytest.fixture
def neovim_data(make_pkg):
    """Repo `main`: neovim 0.9.0 -> libuv 1.0.0."""
    return {
        "neovim": {
            "0.9.0": {
                "path": make_pkg("neovim", "0.9.0", ["bin/nvim"]),
                "binaries": ["bin/nvim"],
                "dependencies": ["main:libuv:1.0.0"],
            },
        },
        "libuv": {
            "1.0.0": {
                "path": make_pkg("libuv", "1.0.0", ["libuv.so"]),
                "binaries": ["libuv.so"],
            },
        },
    }


@pytest.fixture
def neovim_repos(neovim_data) -> RepositorySet:
    return RepositorySet([parse_manifest(neovim_data, "main")])


@pytest.fixture
def store(tmp_path: Path) -> Path:
    store_dir = tmp_path / "store"
    (store_dir / "bins").mkdir(parents=True)
    return store_dir


@pytest.fixture
def ledger(store: Path) -> Ledger:
    return Ledger.load(str(store / "installed.json"))
