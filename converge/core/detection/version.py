"""
Version parsing and comparison (pure).

Versions are compared numerically, component by component, so that
``1.10.0`` is newer than ``1.9.2``.  Missing trailing components
count as zero.  No I/O, no subprocess.
"""

from __future__ import annotations

import re

# First dotted number in a tool's --version output.
DEFAULT_VERSION_PATTERN = r"(\d+(?:\.\d+)+)"

_COMPONENT_RE = re.compile(r"\d+")


def parse_version(version: str) -> tuple[int, ...]:
    """Turn ``"v1.2.3-beta"`` into ``(1, 2, 3)``.

    Raises:
        ValueError: If the string contains no numeric component.
    """
    head = version.strip().lstrip("vV").split("-", 1)[0].split("+", 1)[0]
    parts = tuple(int(p) for p in _COMPONENT_RE.findall(head))
    if not parts:
        raise ValueError(f"Not a version: {version!r}")
    return parts


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is older, equal or newer than ``b``."""
    pa, pb = parse_version(a), parse_version(b)
    width = max(len(pa), len(pb))
    pa += (0,) * (width - len(pa))
    pb += (0,) * (width - len(pb))
    return (pa > pb) - (pa < pb)


def is_at_least(version: str, minimum: str) -> bool:
    """Whether ``version`` >= ``minimum``."""
    return compare_versions(version, minimum) >= 0


def extract_version(output: str, pattern: str = "") -> str | None:
    """Pull a version string out of command output.

    Args:
        output: Text printed by e.g. ``tool --version``.
        pattern: Regex with one capture group. Defaults to the first
            dotted number in the output.
    """
    match = re.search(pattern or DEFAULT_VERSION_PATTERN, output)
    if not match:
        return None
    return match.group(1) if match.groups() else match.group(0)
