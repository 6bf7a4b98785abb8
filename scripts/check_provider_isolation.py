#!/usr/bin/env python3
"""Provider isolation validation script.

Enforces the architectural rule that core/, types/, and utils/ stay free of
notification provider details. The SNS client, boto3 and botocore belong in
plugins/sns/ only; everything else talks to the provider through the
protocols in types/protocols.py.

This script scans for:
- Imports of spend_monitor.plugins.* or the boto3/botocore SDK
- Provider name strings in code, comments, or docstrings
- Provider-specific configuration field names (e.g., sns_topic)

Exit codes:
    0: No violations found (clean)
    1: Violations detected (architectural rule broken)
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Final

RED: Final[str] = "\033[91m"
GREEN: Final[str] = "\033[92m"
YELLOW: Final[str] = "\033[93m"
RESET: Final[str] = "\033[0m"

PROTECTED_DIRS: Final[tuple[str, ...]] = ("core", "types", "utils")

# Lower-case provider and SDK names matched as whole words
PROVIDER_NAMES: Final[tuple[str, ...]] = ("sns", "boto3", "botocore", "aws")

_NAMES: Final[str] = "|".join(PROVIDER_NAMES)

RULES: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (re.compile(r"^\s*(?:from|import)\s+spend_monitor\.plugins\b"), "Import from provider plugin"),
    (re.compile(r"^\s*(?:from|import)\s+(?:boto3|botocore)\b"), "Import of provider SDK"),
    (re.compile(rf"\b(?:{_NAMES})_\w+", re.IGNORECASE), "Provider-specific identifier"),
    (re.compile(rf"\b(?:{_NAMES})\b", re.IGNORECASE), "Provider name reference"),
)


def check_file(file_path: Path) -> list[tuple[int, str]]:
    """Check one Python file.

    Returns:
        (line_number, description) pairs; one per offending line
    """
    try:
        lines = file_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        print(f"{YELLOW}Warning: Could not read {file_path}: {e}{RESET}", file=sys.stderr)
        return []

    violations: list[tuple[int, str]] = []
    for line_num, line in enumerate(lines, start=1):
        for pattern, description in RULES:
            if pattern.search(line):
                violations.append((line_num, f"{description}: {line.strip()}"))
                break
    return violations


def scan(package_root: Path) -> dict[Path, list[tuple[int, str]]]:
    """Scan every protected directory under ``package_root``."""
    found: dict[Path, list[tuple[int, str]]] = {}
    for protected_dir in PROTECTED_DIRS:
        dir_path = package_root / protected_dir
        if not dir_path.exists():
            print(f"{YELLOW}Warning: Protected directory {dir_path} does not exist{RESET}", file=sys.stderr)
            continue
        for py_file in sorted(dir_path.rglob("*.py")):
            if "__pycache__" in py_file.parts:
                continue
            if violations := check_file(py_file):
                found[py_file] = violations
    return found


def main() -> int:
    """Run the isolation check from the repository root.

    Returns:
        Exit code: 0 if no violations, 1 if violations found.
    """
    project_root = Path(__file__).parent.parent
    package_root = project_root / "src" / "spend_monitor"
    if not package_root.exists():
        print(f"{RED}Error: Could not find src/spend_monitor directory{RESET}", file=sys.stderr)
        return 1

    print(f"Checking provider isolation in {', '.join(PROTECTED_DIRS)} under {package_root}\n")
    found = scan(package_root)

    if not found:
        print(f"{GREEN}✓ No provider isolation violations found{RESET}")
        return 0

    total = sum(len(v) for v in found.values())
    print(f"{RED}✗ Found {total} provider isolation violations:{RESET}\n")
    for file_path, violations in found.items():
        print(f"{RED}{file_path.relative_to(project_root)}{RESET}")
        for line_num, description in violations:
            print(f"  {line_num}: {description}")
        print()

    print("Move provider-specific code to plugins/<provider>/.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
