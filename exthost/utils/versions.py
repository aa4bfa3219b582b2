"""npm-style version ranges evaluated with packaging.version.

Supports comparators (>=, <=, >, <, =), caret and tilde ranges, x-ranges,
hyphen ranges and `||` alternatives. Unparseable versions never satisfy.
"""

import re

from packaging.version import InvalidVersion, Version

_PARTIAL = re.compile(
    r"^v?(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?(?P<rest>[-+].*)?$"
)
_COMPARATOR = re.compile(r"^(?P<op>>=|<=|>|<|=|\^|~>?)?\s*(?P<version>.*)$")

_Constraint = tuple[str, Version]


def parse_version(value: str | None) -> Version | None:
    """Version or None when value is empty or not a version."""
    if not value:
        return None
    try:
        return Version(value.strip().lstrip("=").strip())
    except InvalidVersion:
        return None


def gte(left: str | None, right: str | None) -> bool:
    """left >= right. False when either side is not a version."""
    a, b = parse_version(left), parse_version(right)
    if a is None or b is None:
        return False
    return a >= b


def engine_range(required: str | None) -> str:
    """Engine ranges treat a leading caret as a lower bound only."""
    if not required:
        return ""
    required = required.strip()
    return ">=" + required[1:] if required.startswith("^") else required


def _num(part: str | None) -> int | None:
    if part is None or part in ("x", "X", "*"):
        return None
    return int(part)


def _ver(major: int, minor: int, patch: int, rest: str = "") -> Version:
    return Version(f"{major}.{minor}.{patch}{rest or ''}")


def _expand(op: str, text: str) -> list[_Constraint]:
    match = _PARTIAL.match(text)
    if not text or text in ("*", "x", "X"):
        return []
    if match is None:
        raise InvalidVersion(text)
    major = _num(match["major"])
    minor = _num(match["minor"])
    patch = _num(match["patch"])
    rest = match["rest"] or ""
    if major is None:
        return [] if op in ("", "=", ">=", "<=", "^", "~", "~>") else [("<", _ver(0, 0, 0))]
    lo_minor = minor or 0
    lo_patch = patch or 0
    low = _ver(major, lo_minor, lo_patch, rest)

    if op in ("", "="):
        if minor is None:
            return [(">=", low), ("<", _ver(major + 1, 0, 0))]
        if patch is None:
            return [(">=", low), ("<", _ver(major, minor + 1, 0))]
        return [("==", low)]
    if op == "^":
        if major > 0 or minor is None:
            upper = _ver(major + 1, 0, 0)
        elif minor > 0 or patch is None:
            upper = _ver(0, minor + 1, 0)
        else:
            upper = _ver(0, 0, lo_patch + 1)
        return [(">=", low), ("<", upper)]
    if op in ("~", "~>"):
        upper = _ver(major + 1, 0, 0) if minor is None else _ver(major, minor + 1, 0)
        return [(">=", low), ("<", upper)]
    if op == ">":
        if minor is None:
            return [(">=", _ver(major + 1, 0, 0))]
        if patch is None:
            return [(">=", _ver(major, minor + 1, 0))]
        return [(">", low)]
    if op == "<=":
        if minor is None:
            return [("<", _ver(major + 1, 0, 0))]
        if patch is None:
            return [("<", _ver(major, minor + 1, 0))]
        return [("<=", low)]
    return [(op, low)]


def _parse_set(text: str) -> list[_Constraint]:
    text = text.strip()
    hyphen = re.match(r"^(\S+)\s+-\s+(\S+)$", text)
    if hyphen:
        return _expand(">=", hyphen.group(1)) + _expand("<=", hyphen.group(2))
    # "> = 1.0" style spacing between operator and version
    text = re.sub(r"(>=|<=|>|<|=|\^|~>?)\s+", r"\1", text)
    constraints: list[_Constraint] = []
    for token in text.split():
        match = _COMPARATOR.match(token)
        if match is None:
            raise InvalidVersion(token)
        constraints.extend(_expand(match["op"] or "", match["version"]))
    return constraints


def _check(version: Version, constraint: _Constraint) -> bool:
    op, bound = constraint
    if op == ">=":
        return version >= bound
    if op == ">":
        return version > bound
    if op == "<=":
        return version <= bound
    if op == "<":
        return version < bound
    return version == bound


def satisfies(version: str | None, range_: str | None) -> bool:
    """True when version falls in the npm-style range. Empty range matches anything."""
    parsed = parse_version(version)
    if parsed is None:
        return False
    if not range_ or not range_.strip():
        return True
    try:
        for alternative in range_.split("||"):
            constraints = _parse_set(alternative)
            if all(_check(parsed, c) for c in constraints):
                return True
    except (InvalidVersion, ValueError):
        return False
    return False
