from __future__ import annotations

import importlib.metadata
import json
import os
import subprocess
from pathlib import Path
from typing import NamedTuple, Optional

DISTRIBUTION = "eqedit"


class BuildInfo(NamedTuple):
    version: Optional[str]
    commit: Optional[str]
    dirty: bool


def _run_git(args: list[str], cwd: Optional[str] = None) -> Optional[str]:
    try:
        out = subprocess.check_output(["git", *args], cwd=cwd or os.getcwd(),
                                      stderr=subprocess.DEVNULL)
        return out.decode().strip() or None
    except (subprocess.CalledProcessError, FileNotFoundError, OSError):
        return None


def _installed_version() -> Optional[str]:
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return None


def _commit_from_git_repo() -> tuple[Optional[str], bool]:
    here = Path(__file__).resolve().parent
    root = _run_git(["rev-parse", "--show-toplevel"], cwd=str(here))
    if not root:
        return None, False
    commit = _run_git(["rev-parse", "HEAD"], cwd=root)
    status = _run_git(["status", "--porcelain"], cwd=root)
    return commit, bool(status)


def _commit_from_direct_url() -> Optional[str]:
    # PEP 610 direct_url.json carries the VCS commit when installed from a checkout
    try:
        dist = importlib.metadata.distribution(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return None
    for file in dist.files or []:
        if file.name == "direct_url.json" and file.parent and file.parent.name.endswith(".dist-info"):
            try:
                with Path(dist.locate_file(file)).open("r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError):
                return None
            return (data.get("vcs_info") or {}).get("commit_id")
    return None


def get_build_info() -> BuildInfo:
    # Priority: live git checkout -> direct_url.json -> unknown
    commit, dirty = _commit_from_git_repo()
    if not commit:
        commit, dirty = _commit_from_direct_url(), False
    return BuildInfo(version=_installed_version(), commit=commit, dirty=dirty)


def get_version_string() -> str:
    info = get_build_info()
    version = info.version or "unknown"
    if not info.commit:
        return f"eqedit {version}"
    dirty_suffix = "-dirty" if info.dirty else ""
    return f"eqedit {version} ({info.commit[:7]}{dirty_suffix})"
