"""
Workspace snapshot: git status, recent commits and manifest metadata as JSON.

Runs as a child process of the built-in "builtin.workspaceSnapshot" tool, so
it must only use the standard library and never import triagecore. Every
probe is best-effort: a failure adds a note instead of aborting the script.
"""

import json
import os
import subprocess
import sys
import tomllib
from datetime import datetime, timezone
from pathlib import Path

GIT_TIMEOUT_SECONDS = 20
RECENT_COMMITS = 5


def _git(root, *args):
    proc = subprocess.run(
        ["git", *args],
        cwd=root,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        timeout=GIT_TIMEOUT_SECONDS,
        check=True,
    )
    return proc.stdout.strip()


def _package_json(root):
    path = root / "package.json"
    if not path.exists():
        return None
    pkg = json.loads(path.read_text(encoding="utf-8"))
    return {
        "name": pkg.get("name"),
        "version": pkg.get("version"),
        "scripts": sorted((pkg.get("scripts") or {}).keys()),
        "dependencies": sorted((pkg.get("dependencies") or {}).keys()),
        "devDependencies": sorted((pkg.get("devDependencies") or {}).keys()),
    }


def _pyproject(root):
    path = root / "pyproject.toml"
    if not path.exists():
        return None
    with open(path, "rb") as f:
        data = tomllib.load(f)
    project = data.get("project") or {}
    return {
        "name": project.get("name"),
        "version": project.get("version"),
        "dependencies": list(project.get("dependencies") or []),
        "optionalDependencies": sorted((project.get("optional-dependencies") or {}).keys()),
        "scripts": sorted((project.get("scripts") or {}).keys()),
    }


def build_snapshot(root):
    summary = {
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "workspace": {"root": str(root), "name": root.name},
        "git": {},
        "manifests": {},
        "notes": [],
    }

    try:
        summary["git"]["status"] = _git(root, "status", "--short")
    except (OSError, subprocess.SubprocessError) as e:
        summary["git"]["error"] = str(e)
        summary["notes"].append("git status unavailable")

    try:
        log = _git(root, "log", f"-{RECENT_COMMITS}", "--pretty=format:%h:::%an:::%ar:::%s")
        commits = []
        for line in filter(None, log.split("\n")):
            parts = line.split(":::", 3)
            parts += [""] * (4 - len(parts))
            commits.append(dict(zip(("hash", "author", "when", "message"), parts)))
        summary["git"]["recentCommits"] = commits
    except (OSError, subprocess.SubprocessError):
        summary["notes"].append("recent commits unavailable")

    for key, reader in (("packageJson", _package_json), ("pyproject", _pyproject)):
        try:
            manifest = reader(root)
        except (OSError, ValueError) as e:
            summary["notes"].append(f"{key} parse failed: {e}")
            continue
        if manifest is not None:
            summary["manifests"][key] = manifest

    return summary


def main():
    root = Path(os.environ.get("ISSUETRIAGE_WORKSPACE_ROOT") or os.getcwd())
    json.dump(build_snapshot(root), sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
