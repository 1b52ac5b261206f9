"""
Selector Matching and Sorting
=============================

This module compiles Mongo-style selectors into plain predicates over
documents, and sort specifiers into key functions.

Supported selectors:

- ``None`` or ``{}``: match every document
- a string: shorthand for ``{"_id": value}``
- field equality, with dotted paths into sub-documents and arrays. A field
  holding an array matches when any element matches.
- field operators: ``$eq $ne $gt $gte $lt $lte $in $nin $exists $regex
  $options $not $size``
- logical operators: ``$and $or $nor``

Compiled matchers are memoized in an LRU cache keyed by a frozen copy of the
selector that keeps key order and container types, so re-running the same
query does not re-compile it.
"""

import functools
import re
import threading
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

from cachetools import LRUCache

from ..errors import InvalidSelectorError

Matcher = Callable[[Mapping[str, Any]], bool]

_MISSING = object()

_cache: LRUCache = LRUCache(maxsize=1024)
_cache_lock = threading.RLock()


# ============================================================================
# PUBLIC API
# ============================================================================


def compile_selector(selector: Any) -> Matcher:
    """
    Return a predicate that tells whether a document matches ``selector``.

    Raises InvalidSelectorError for unknown operators or malformed operands.
    """
    selector = normalize_selector(selector)
    if not selector:
        return _match_all

    key = _cache_key(selector)
    if key is not None:
        with _cache_lock:
            matcher = _cache.get(key)
        if matcher is not None:
            return matcher

    matcher = _compile_document(selector)

    if key is not None:
        with _cache_lock:
            _cache[key] = matcher
    return matcher


def normalize_selector(selector: Any) -> Dict[str, Any]:
    """Expand the id shorthand and reject anything that is not a mapping."""
    if selector is None:
        return {}
    if isinstance(selector, str):
        return {"_id": selector}
    if not isinstance(selector, Mapping):
        raise InvalidSelectorError(f"Selector must be a mapping or an id, got {selector!r}")
    return dict(selector)


def resolve_path(doc: Any, path: str) -> List[Any]:
    """
    All values reachable at a dotted path.

    Returns an empty list when the path does not exist. Arrays of
    sub-documents fan out, so ``"tags.name"`` reaches every element's name.
    """
    return _resolve(doc, path.split("."))


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


# ============================================================================
# COMPILATION
# ============================================================================


def _match_all(doc: Mapping[str, Any]) -> bool:
    return True


def _cache_key(selector: Mapping[str, Any]) -> Optional[Hashable]:
    """
    Hashable form of ``selector`` that keeps key order and container types.

    Returns None for selectors holding values without a stable form; those
    are compiled every time.
    """
    try:
        return _freeze(selector)
    except TypeError:
        return None


def _freeze(value: Any) -> Hashable:
    if isinstance(value, Mapping):
        return ("map", tuple((key, _freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return (type(value).__name__, tuple(_freeze(item) for item in value))
    if isinstance(value, re.Pattern):
        return ("regex", value.pattern, value.flags)
    if value is None or isinstance(value, (str, int, float)):
        return (type(value).__name__, value)
    raise TypeError(f"Cannot build a cache key from {type(value).__name__}")


def _compile_document(selector: Mapping[str, Any]) -> Matcher:
    clauses: List[Matcher] = []
    for key, value in selector.items():
        if key.startswith("$"):
            clauses.append(_compile_logical(key, value))
        else:
            clauses.append(_compile_field(key, value))

    def matcher(doc: Mapping[str, Any]) -> bool:
        return all(clause(doc) for clause in clauses)

    return matcher


def _compile_logical(operator: str, operand: Any) -> Matcher:
    if operator not in ("$and", "$or", "$nor"):
        raise InvalidSelectorError(f"Unknown top-level operator {operator}")
    if not isinstance(operand, (list, tuple)) or not operand:
        raise InvalidSelectorError(f"{operator} expects a non-empty list of selectors")

    branches = [_compile_document(normalize_selector(branch)) for branch in operand]

    if operator == "$and":
        return lambda doc: all(branch(doc) for branch in branches)
    if operator == "$or":
        return lambda doc: any(branch(doc) for branch in branches)
    return lambda doc: not any(branch(doc) for branch in branches)


def _compile_field(path: str, condition: Any) -> Matcher:
    test = _compile_condition(condition)
    parts = path.split(".")

    def matcher(doc: Mapping[str, Any]) -> bool:
        return test(_resolve(doc, parts))

    return matcher


def _is_operator_document(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    keys = [key.startswith("$") for key in value]
    if any(keys) and not all(keys):
        raise InvalidSelectorError(f"Cannot mix operators and fields in {value!r}")
    return all(keys)


def _compile_condition(condition: Any) -> Callable[[List[Any]], bool]:
    """Compile a field condition into a test over the resolved candidates."""
    if isinstance(condition, re.Pattern):
        return _any_element(lambda value: _regex_test(condition, value))
    if not _is_operator_document(condition):
        return _equality_test(condition)

    options = condition.get("$options", "")
    tests = [
        _compile_operator(operator, operand, options)
        for operator, operand in condition.items()
        if operator != "$options"
    ]
    return lambda candidates: all(test(candidates) for test in tests)


def _compile_operator(operator: str, operand: Any, options: str) -> Callable[[List[Any]], bool]:
    if operator == "$eq":
        return _equality_test(operand)
    if operator == "$ne":
        test = _equality_test(operand)
        return lambda candidates: not test(candidates)
    if operator in ("$in", "$nin"):
        if not isinstance(operand, (list, tuple)):
            raise InvalidSelectorError(f"{operator} expects a list")
        tests = [_equality_test(value) for value in operand]
        if operator == "$in":
            return lambda candidates: any(test(candidates) for test in tests)
        return lambda candidates: not any(test(candidates) for test in tests)
    if operator in _COMPARISONS:
        compare = _COMPARISONS[operator]
        return _any_element(lambda value: _comparable(value, operand) and compare(value, operand))
    if operator == "$exists":
        wanted = bool(operand)
        return lambda candidates: bool(candidates) == wanted
    if operator == "$regex":
        pattern = _regex(operand, options)
        return _any_element(lambda value: _regex_test(pattern, value))
    if operator == "$size":
        if isinstance(operand, bool) or not isinstance(operand, int):
            raise InvalidSelectorError("$size expects an integer")
        return lambda candidates: any(
            isinstance(value, list) and len(value) == operand for value in candidates
        )
    if operator == "$not":
        if isinstance(operand, (re.Pattern, str)):
            inner = _compile_condition(_regex(operand, options))
        elif _is_operator_document(operand):
            inner = _compile_condition(operand)
        else:
            raise InvalidSelectorError("$not expects an operator document or a regex")
        return lambda candidates: not inner(candidates)
    raise InvalidSelectorError(f"Unknown operator {operator}")


# ============================================================================
# VALUE TESTS
# ============================================================================


_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
}


def _any_element(test: Callable[[Any], bool]) -> Callable[[List[Any]], bool]:
    """Lift a scalar test so arrays match when any element matches."""

    def lifted(candidates: List[Any]) -> bool:
        for value in candidates:
            if test(value):
                return True
            if isinstance(value, list) and any(test(item) for item in value):
                return True
        return False

    return lifted


def _equality_test(expected: Any) -> Callable[[List[Any]], bool]:
    element_test = _any_element(lambda value: values_equal(value, expected))
    if expected is None:
        # null also matches a missing field
        return lambda candidates: not candidates or element_test(candidates)
    return element_test


def values_equal(a: Any, b: Any) -> bool:
    """Equality that keeps booleans apart from the numbers 0 and 1."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return list(a.keys()) == list(b.keys()) and all(
            values_equal(a[key], b[key]) for key in a
        )
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def _comparable(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return True
    return type(a) is type(b) and not isinstance(a, (list, Mapping))


def _regex(pattern: Any, options: str) -> "re.Pattern[str]":
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise InvalidSelectorError("$regex expects a string or compiled pattern")
    flags = 0
    for option in options:
        flag = _REGEX_FLAGS.get(option)
        if flag is None:
            raise InvalidSelectorError(f"Unknown $options flag {option!r}")
        flags |= flag
    return re.compile(pattern, flags)


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def _regex_test(pattern: "re.Pattern[str]", value: Any) -> bool:
    return isinstance(value, str) and pattern.search(value) is not None


def _resolve(value: Any, parts: Sequence[str]) -> List[Any]:
    if not parts:
        return [value]

    head, rest = parts[0], parts[1:]
    if isinstance(value, Mapping):
        if head not in value:
            return []
        return _resolve(value[head], rest)
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _resolve(value[index], rest) if index < len(value) else []
        found: List[Any] = []
        for item in value:
            if isinstance(item, Mapping):
                found.extend(_resolve(item, parts))
        return found
    return []


# ============================================================================
# SORTING
# ============================================================================


SortSpec = Union[Mapping[str, int], Sequence[Tuple[str, int]]]

# Cross-type ordering: missing/None first, then numbers, strings, documents,
# arrays, booleans
_TYPE_ORDER = ((type(None), 0), (bool, 5), ((int, float), 1), (str, 2), (Mapping, 3), (list, 4))


def compile_sort(spec: SortSpec) -> Callable[[Mapping[str, Any]], Any]:
    """Return a ``functools.cmp_to_key`` key for a sort specifier."""
    items = list(spec.items()) if isinstance(spec, Mapping) else list(spec)
    fields: List[Tuple[str, int]] = []
    for item in items:
        if isinstance(item, str):
            field, direction = item, 1
        else:
            field, direction = item
        if direction not in (1, -1):
            raise InvalidSelectorError(f"Sort direction for {field!r} must be 1 or -1")
        fields.append((field, direction))

    def compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        for path, direction in fields:
            result = _compare_values(_sort_value(a, path), _sort_value(b, path))
            if result:
                return result * direction
        return 0

    return functools.cmp_to_key(compare)


def _sort_value(doc: Mapping[str, Any], path: str) -> Any:
    candidates = resolve_path(doc, path)
    return candidates[0] if candidates else None


def _type_rank(value: Any) -> int:
    for kind, rank in _TYPE_ORDER:
        if isinstance(value, kind):
            return rank
    return 6


def _compare_values(a: Any, b: Any) -> int:
    rank_a, rank_b = _type_rank(a), _type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a in (0, 3, 4, 6):
        return 0
    if a < b:
        return -1
    if a > b:
        return 1
    return 0
