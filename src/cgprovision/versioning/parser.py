"""Version parsing, ordering and compatibility rules."""

from typing import Optional

import semantic_version

from cgprovision.common.errors import InvalidVersion
from .models import Version


def parse_version(text: str) -> Version:
    """Parse "major[.minor[.patch]]" with an optional leading "v".

    Pre-release and build suffixes are rejected; only plain numeric
    components are accepted. Leading zeros are allowed ("2023.01.5").
    """
    if not isinstance(text, str):
        raise InvalidVersion(f"invalid version: {text!r}")
    raw = text[1:] if text.startswith("v") else text
    if not raw or "-" in raw or "+" in raw or any(c.isspace() for c in raw):
        raise InvalidVersion(f"invalid version: {text!r}")
    # semantic_version rejects leading zeros
    raw = ".".join(str(int(p)) if p.isascii() and p.isdigit() else p for p in raw.split("."))
    try:
        major, minor, patch, _, _ = semantic_version.Version.parse(raw, partial=True)
    except ValueError as exc:
        raise InvalidVersion(f"invalid version: {text!r}") from exc

    parts = [major]
    if minor is not None:
        parts.append(minor)
        if patch is not None:
            parts.append(patch)
    return Version(tuple(parts))


def compare(a: Optional[Version], b: Optional[Version]) -> int:
    """Compare two versions using the inverted sign convention.

    Returns -1 if a is larger than b, 1 if b is larger than a and 0 if they
    are equal. Missing components count as zero ("1.2" == "1.2.0"); None
    sorts below every version.
    """
    if a is None or b is None:
        if a is None and b is None:
            return 0
        return 1 if a is None else -1
    for left, right in zip(a.padded(), b.padded()):
        if left > right:
            return -1
        if right > left:
            return 1
    return 0


def is_compatible(requested: Version, candidate: Version) -> bool:
    """Return True if ``candidate`` may serve a request for ``requested``.

    The majors must match. Below 1.0 the minor is a breaking boundary and
    must match too; from 1.0 on the candidate must not need a newer minor
    than the requester declared.
    """
    if requested.major != candidate.major:
        return False
    if requested.minor is None or candidate.minor is None:
        return True
    if requested.major == 0:
        return requested.minor == candidate.minor
    return candidate.minor <= requested.minor
