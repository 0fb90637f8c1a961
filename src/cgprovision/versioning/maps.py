"""Lookups in version compatibility maps ("if you need key, use value").

Maps come from configuration and remote files, so one malformed key must
never invalidate the whole map: such keys are logged and skipped.
"""
from __future__ import annotations

import logging
from typing import Iterator, Mapping, Optional, Tuple

from cgprovision.common.errors import InvalidVersion, NoCompatibleVersion, VersionNotFound
from .models import Version
from .parser import compare, is_compatible, parse_version

logger = logging.getLogger(__name__)


def iter_valid_keys(mapping: Mapping[str, str], context: str = "") -> Iterator[Tuple[Version, str]]:
    """Yield (parsed key, raw key) pairs, warning about keys that do not parse."""
    for raw_key in mapping:
        try:
            yield parse_version(raw_key), raw_key
        except InvalidVersion:
            logger.warning(
                "Skipping invalid version '%s' in version map%s",
                raw_key,
                f" for {context}" if context else "",
            )


def _parse_value(mapping: Mapping[str, str], raw_key: str) -> Version:
    value = mapping[raw_key]
    try:
        return parse_version(value)
    except InvalidVersion as exc:
        raise InvalidVersion(f"{raw_key} -> {value!r}: {exc}") from exc


def find_compatible_entry(
    requested: Version,
    mapping: Mapping[str, str],
    context: str = "",
) -> Tuple[Version, Version]:
    """Return (matched key, mapped value) for the best compatible key.

    An exact string match wins outright; otherwise the largest key that is
    compatible with ``requested`` is chosen.
    """
    exact = str(requested)
    if exact in mapping:
        return requested, _parse_value(mapping, exact)

    found: Optional[Version] = None
    found_raw = ""
    for key, raw_key in iter_valid_keys(mapping, context):
        if is_compatible(requested, key) and compare(found, key) == 1:
            found, found_raw = key, raw_key
    if found is None:
        raise NoCompatibleVersion(requested, mapping.keys(), context or None)
    return found, _parse_value(mapping, found_raw)


def find_compatible_in_map(
    requested: Version,
    mapping: Mapping[str, str],
    context: str = "",
) -> Version:
    """Return the value mapped to the best compatible key of ``mapping``."""
    return find_compatible_entry(requested, mapping, context)[1]


def latest_in_map(mapping: Mapping[str, str], context: str = "") -> Version:
    """Return the value of the largest key, without any compatibility filter."""
    latest: Optional[Version] = None
    latest_raw = ""
    for key, raw_key in iter_valid_keys(mapping, context):
        if compare(latest, key) == 1:
            latest, latest_raw = key, raw_key
    if latest is None:
        raise VersionNotFound(f"no versions available{f' for {context}' if context else ''}")
    return _parse_value(mapping, latest_raw)
