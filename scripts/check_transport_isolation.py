#!/usr/bin/env python3
"""Transport isolation validation script.

Enforces the architectural rule that the queue engine (core/, types/, utils/)
stays transport-agnostic: it talks to transports only through the
TransportClient protocol and the TransportRegistry.

This script scans for:
- Imports of concrete transport modules (bulk_notify.transports.<channel>.transport/client)
- Imports of SMTP client libraries

Transport configuration schemas (bulk_notify.transports.<channel>.config) may
be imported by core/config.py, which assembles the application configuration.

Exit codes:
    0: No violations found (clean)
    1: Violations detected (architectural rule broken)
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Final

# ANSI color codes for terminal output
RED: Final[str] = "\033[91m"
GREEN: Final[str] = "\033[92m"
YELLOW: Final[str] = "\033[93m"
RESET: Final[str] = "\033[0m"

PROTECTED_DIRS: Final[tuple[str, ...]] = ("core", "types", "utils")

CONCRETE_TRANSPORT_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:from|import)\s+bulk_notify\.transports\.(?:email|whatsapp)\.(?:transport|client)\b"
)

SMTP_LIBRARY_IMPORT: Final[re.Pattern[str]] = re.compile(r"^\s*(?:from|import)\s+(?:aiosmtplib|smtplib)\b")


def check_file(file_path: Path) -> list[tuple[int, str]]:
    """Return (line_number, description) pairs for every violation in a file."""
    violations: list[tuple[int, str]] = []

    try:
        lines = file_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        print(f"{YELLOW}Warning: Could not read {file_path}: {e}{RESET}", file=sys.stderr)
        return violations

    for line_num, line in enumerate(lines, start=1):
        if CONCRETE_TRANSPORT_IMPORT.search(line):
            violations.append((line_num, f"Import of concrete transport: {line.strip()}"))
        if SMTP_LIBRARY_IMPORT.search(line):
            violations.append((line_num, f"Import of SMTP library: {line.strip()}"))

    return violations


def scan_directory(base_path: Path, protected_dir: str) -> dict[Path, list[tuple[int, str]]]:
    """Scan one protected directory and map files to their violations."""
    dir_path = base_path / protected_dir
    if not dir_path.exists():
        print(f"{YELLOW}Warning: Protected directory {dir_path} does not exist{RESET}", file=sys.stderr)
        return {}

    violations_by_file: dict[Path, list[tuple[int, str]]] = {}
    for py_file in dir_path.rglob("*.py"):
        if "__pycache__" in py_file.parts:
            continue
        file_violations = check_file(py_file)
        if file_violations:
            violations_by_file[py_file] = file_violations
    return violations_by_file


def main() -> int:
    """Return 0 if the engine is transport-agnostic, 1 otherwise."""
    project_root = Path(__file__).parent.parent
    src_path = project_root / "src" / "bulk_notify"

    if not src_path.exists():
        print(f"{RED}Error: Could not find src/bulk_notify directory{RESET}", file=sys.stderr)
        return 1

    print("Checking transport isolation in core, types, and utils modules...")
    print(f"Scanning: {src_path}\n")

    all_violations: dict[Path, list[tuple[int, str]]] = {}
    for protected_dir in PROTECTED_DIRS:
        all_violations.update(scan_directory(src_path, protected_dir))

    if not all_violations:
        print(f"{GREEN}✓ No transport isolation violations found{RESET}")
        return 0

    total_violations = sum(len(v) for v in all_violations.values())
    print(f"{RED}✗ Found {total_violations} transport isolation violations:{RESET}\n")

    for file_path, violations in sorted(all_violations.items()):
        try:
            rel_path = file_path.relative_to(project_root)
        except ValueError:
            rel_path = file_path
        print(f"{RED}{rel_path}{RESET}")
        for line_num, description in violations:
            print(f"  {line_num}: {description}")
        print()

    print(f"{RED}Transport isolation check failed!{RESET}")
    print("\nMove channel-specific code to transports/<channel>/.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
