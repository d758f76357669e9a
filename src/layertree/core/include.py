"""
Include specification helpers.

An include specification mirrors the shape of a resolver's output. Each node
is either a bare boolean, `None` (no opinion), or a mapping from field name
to a nested specification. Python has no way to derive the valid shape from
a resolver's return annotation at runtime, so the helpers here validate the
structure only; unknown field names are accepted and ignored during
resolution.
"""

from collections.abc import Mapping
from typing import Any, TypeVar

from layertree.core.types import IncludeSpec
from layertree.exceptions import IncludeSpecError

V = TypeVar("V")


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def validate_include(include: Any, path: str = "") -> IncludeSpec:
    """
    Validate the structure of an include specification.

    Params:
        include: Candidate specification
        path: Dotted location used in error messages (root when empty)

    Returns:
        The specification, unchanged

    Raises:
        IncludeSpecError: If a node is not a bool, None or a string-keyed mapping
    """
    if include is None or isinstance(include, bool):
        return include

    if not isinstance(include, Mapping):
        raise IncludeSpecError(
            path,
            f"expected bool, None or mapping, got {type(include).__name__}",
        )

    for key, child in include.items():
        if not isinstance(key, str):
            raise IncludeSpecError(
                path, f"field names must be strings, got {key!r}"
            )
        validate_include(child, _join(path, key))

    return include


def merge_include(base: IncludeSpec, override: IncludeSpec) -> IncludeSpec:
    """
    Deep-merge two include specifications, preferring `override`.

    Mappings are merged key by key. Any non-mapping value in `override`
    (including False) replaces whatever `base` holds at that position, and a
    `None` override leaves `base` in place.

    Params:
        base: Specification providing defaults
        override: Specification taking precedence

    Returns:
        A new merged specification; neither input is modified
    """
    if override is None:
        return base
    if not isinstance(override, Mapping) or not isinstance(base, Mapping):
        return override

    merged = dict(base)
    for key, value in override.items():
        merged[key] = merge_include(base.get(key), value)
    return merged


def fields_for(include: IncludeSpec, fields: Mapping[str, V]) -> dict[str, V]:
    """
    Keep the entries of `fields` that the include specification does not exclude.

    Resolvers use this to skip expensive work (columns, sub-queries) for fields
    the caller turned off explicitly. Only an explicit False removes a field.

    Params:
        include: The include specification of the current invocation
        fields: Candidate field name to value mapping

    Returns:
        A new dict preserving the order of `fields`
    """
    if include is False:
        return {}
    if not isinstance(include, Mapping):
        return dict(fields)
    return {key: value for key, value in fields.items() if include.get(key) is not False}
