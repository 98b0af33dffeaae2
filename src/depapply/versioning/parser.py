"""Token and range parsing utilities for package identities and version ranges."""

import re
from typing import Optional, Tuple

from ..errors import ArgumentInvalidError
from .models import PackageIdentity, VersionRange, parse_version

_COMPARATOR_RE = re.compile(r'^\s*(>=|<=|>|<|==|=)?\s*([0-9A-Za-z\.\-\+]+)\s*$')


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule.

    ``Newtonsoft.Json:6.0.5`` -> ("Newtonsoft.Json", "6.0.5"). A space-separated
    ``Id Version`` pair is accepted as well.
    """
    s = s.strip()
    if ':' not in s:
        if ' ' in s:
            ident, _, spec = s.partition(' ')
            return ident.strip(), spec.strip() or None
        return s, None
    parts = s.rsplit(':', 1)
    identifier = parts[0].strip()
    spec_part = parts[1].strip() if len(parts) > 1 else ''
    spec = spec_part if spec_part else None
    return identifier, spec


def parse_identity_token(token: str) -> PackageIdentity:
    """Parse an ``Id:Version`` token into a PackageIdentity.

    Raises:
        ArgumentInvalidError: when the id or the version is missing or malformed.
    """
    if not token or not token.strip():
        raise ArgumentInvalidError("Package token must not be empty")
    identifier, spec = tokenize_rightmost_colon(token)
    if not identifier:
        raise ArgumentInvalidError(f"Package token has no id: {token!r}")
    if spec is None:
        raise ArgumentInvalidError(f"Package token has no version: {token!r}")
    return PackageIdentity(identifier, parse_version(spec))


def _parse_interval(spec: str) -> VersionRange:
    """Parse NuGet interval notation: ``[1.0,2.0)``, ``(,1.0]``, ``[1.0]``."""
    include_min = spec[0] == '['
    include_max = spec[-1] == ']'
    body = spec[1:-1].strip()
    if ',' not in body:
        # "[1.0]" is the only legal single-value interval
        if not (include_min and include_max) or not body:
            raise ArgumentInvalidError(f"Invalid version range: {spec!r}")
        return VersionRange.exact(body)
    low, high = (part.strip() for part in body.split(',', 1))
    if not low and not high:
        raise ArgumentInvalidError(f"Invalid version range: {spec!r}")
    min_version = parse_version(low) if low else None
    max_version = parse_version(high) if high else None
    if min_version is not None and max_version is not None and min_version > max_version:
        raise ArgumentInvalidError(f"Invalid version range (min > max): {spec!r}")
    return VersionRange(
        min_version=min_version,
        include_min=include_min and min_version is not None,
        max_version=max_version,
        include_max=include_max and max_version is not None,
    )


def _parse_comparators(spec: str) -> VersionRange:
    """Parse comparator lists such as ``>=1.0.0, <2.0.0``."""
    min_version = max_version = None
    include_min, include_max = True, False
    for clause in (c for c in re.split(r'[,\s]+(?=[<>=])|,', spec) if c.strip()):
        m = _COMPARATOR_RE.match(clause)
        if not m:
            raise ArgumentInvalidError(f"Invalid version range: {spec!r}")
        op, raw = m.group(1), m.group(2)
        ver = parse_version(raw)
        if op in ('=', '=='):
            return VersionRange.exact(ver)
        if op in ('>=', '>', None):
            min_version, include_min = ver, op != '>'
        else:
            max_version, include_max = ver, op == '<='
    return VersionRange(min_version, include_min, max_version, include_max)


def parse_version_range(spec: Optional[str]) -> VersionRange:
    """Parse a version range string into a VersionRange.

    Accepted forms: empty/``*`` (any version), interval notation, comparator
    lists and a bare version meaning "this version or higher".
    """
    if spec is None:
        return VersionRange.all()
    s = str(spec).strip()
    if not s or s == '*':
        return VersionRange.all()
    if s[0] in '[(' and s[-1] in '])':
        return _parse_interval(s)
    return _parse_comparators(s)
