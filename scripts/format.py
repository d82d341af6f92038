"""Format script for the monitoring chat backend."""

import subprocess
import sys
from pathlib import Path


def _paths() -> list[str]:
    return ["mcp_chat/", "Servers/", "scripts/"]


def _root_py_files() -> list[str]:
    # tests and conftest live at the repository root
    return sorted(str(p) for p in Path(".").glob("*.py"))


def main():
    """Run ruff format and targeted checks on the codebase."""
    try:
        targets = [*_paths(), *_root_py_files()]

        subprocess.run(["uv", "run", "ruff", "format", *targets], check=True)

        # Fast whitespace cleanups (preview + unsafe for whitespace-only)
        subprocess.run(
            [
                "uv",
                "run",
                "ruff",
                "check",
                "--preview",
                "--fix",
                "--unsafe-fixes",
                "--select",
                "W291,W293,E3",
                *targets,
            ],
            check=True,
        )

        subprocess.run(["uv", "run", "ruff", "check", "--fix", "--ignore", "E501", *targets], check=True)

    except subprocess.CalledProcessError:
        sys.exit(1)


if __name__ == "__main__":
    main()
