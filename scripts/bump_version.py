#!/usr/bin/env python3
"""
Version management for observable-collection.

The version lives in two places that must agree:
- pyproject.toml (``version = "x.y.z"``)
- observable_collection/__init__.py (``__version__ = "x.y.z"``)

Usage:
    python scripts/bump_version.py 0.2.0     # write a new version everywhere
    python scripts/bump_version.py --check   # fail if the two disagree
"""

import argparse
import re
import sys
from pathlib import Path

VERSION_FILES = {
    Path("pyproject.toml"): re.compile(r'^(version\s*=\s*")(.*?)(")$', re.MULTILINE),
    Path("observable_collection/__init__.py"): re.compile(
        r'^(__version__\s*=\s*")(.*?)(")$', re.MULTILINE
    ),
}

VERSION_FORMAT = re.compile(r"^\d+\.\d+\.\d+$")


def read_versions() -> dict:
    """Current version string per file."""
    versions = {}
    for path, pattern in VERSION_FILES.items():
        if not path.exists():
            sys.exit(f"Error: {path} not found")
        match = pattern.search(path.read_text())
        if match is None:
            sys.exit(f"Error: no version found in {path}")
        versions[path] = match.group(2)
    return versions


def write_version(new_version: str) -> None:
    for path, pattern in VERSION_FILES.items():
        content = path.read_text()
        path.write_text(pattern.sub(rf"\g<1>{new_version}\g<3>", content, count=1))
        print(f"Updated {path} to {new_version}")


def main():
    parser = argparse.ArgumentParser(description="Bump or check the project version")
    parser.add_argument("version", nargs="?", help="New version number (x.y.z)")
    parser.add_argument("--check", action="store_true", help="Only verify the files agree")
    args = parser.parse_args()

    versions = read_versions()

    if args.check:
        if len(set(versions.values())) != 1:
            for path, version in versions.items():
                print(f"{path}: {version}")
            sys.exit("Error: versions disagree")
        print(f"Version {next(iter(versions.values()))} is consistent")
        return

    if not args.version or not VERSION_FORMAT.match(args.version):
        sys.exit(f"Error: invalid version {args.version!r}, expected x.y.z")

    write_version(args.version)


if __name__ == "__main__":
    main()
