"""
Modifier Application
====================

Applies Mongo-style update modifiers to documents.

A modifier is either a replacement document (no ``$`` keys; the ``_id`` is
kept) or an operator document using ``$set $unset $inc $push $addToSet $pull
$setOnInsert``. Operator paths may be dotted. Documents are never modified in
place: ``apply_modifier`` returns a new document.
"""

import copy
from typing import Any, Dict, List, Mapping, Set, Tuple

from ..errors import InvalidModifierError
from .selector import _MISSING, _is_operator_document, compile_selector, values_equal

Document = Dict[str, Any]

OPERATORS = ("$set", "$unset", "$inc", "$push", "$addToSet", "$pull", "$setOnInsert")


def is_replacement(modifier: Mapping[str, Any]) -> bool:
    keys = [key.startswith("$") for key in modifier]
    if any(keys) and not all(keys):
        raise InvalidModifierError("Cannot mix update operators and plain fields")
    return not any(keys)


def modified_fields(modifier: Mapping[str, Any]) -> List[str]:
    """Top-level field names an update would touch, in first-seen order."""
    if is_replacement(modifier):
        return [key for key in modifier if key != "_id"]

    fields: List[str] = []
    seen: Set[str] = set()
    for operand in modifier.values():
        if not isinstance(operand, Mapping):
            continue
        for path in operand:
            name = path.split(".", 1)[0]
            if name not in seen:
                seen.add(name)
                fields.append(name)
    return fields


def apply_modifier(doc: Mapping[str, Any], modifier: Mapping[str, Any], is_insert: bool = False) -> Document:
    """
    Return a copy of ``doc`` with ``modifier`` applied.

    ``$setOnInsert`` only takes effect when ``is_insert`` is True.
    Raises InvalidModifierError for unknown operators, bad operands, or an
    attempt to change ``_id``.
    """
    if not isinstance(modifier, Mapping):
        raise InvalidModifierError(f"Modifier must be a mapping, got {modifier!r}")

    if is_replacement(modifier):
        return _replace(doc, modifier)

    result = copy.deepcopy(dict(doc))
    for operator, operand in modifier.items():
        if operator not in OPERATORS:
            raise InvalidModifierError(f"Unknown modifier {operator}")
        if not isinstance(operand, Mapping):
            raise InvalidModifierError(f"{operator} expects a mapping of fields")
        if operator == "$setOnInsert" and not is_insert:
            continue
        for path, value in operand.items():
            _check_id(doc, path, value, operator)
            _APPLY[operator](result, path, copy.deepcopy(value))
    return result


def _replace(doc: Mapping[str, Any], replacement: Mapping[str, Any]) -> Document:
    current_id = doc.get("_id", _MISSING)
    new_id = replacement.get("_id", _MISSING)
    if current_id is not _MISSING and new_id is not _MISSING and new_id != current_id:
        raise InvalidModifierError("The _id field cannot be changed")

    result: Document = {}
    if current_id is not _MISSING:
        result["_id"] = current_id
    for key, value in replacement.items():
        if key != "_id" or current_id is _MISSING:
            result[key] = copy.deepcopy(value)
    return result


def _check_id(doc: Mapping[str, Any], path: str, value: Any, operator: str) -> None:
    if path != "_id" and not path.startswith("_id."):
        return
    if operator in ("$set", "$setOnInsert") and path == "_id" and doc.get("_id", _MISSING) in (_MISSING, value):
        return
    raise InvalidModifierError("The _id field cannot be changed")


# ============================================================================
# PATH HELPERS
# ============================================================================


def _parent(doc: Document, path: str, create: bool) -> Tuple[Any, str]:
    """Walk to the container holding the last path segment."""
    parts = path.split(".")
    node: Any = doc
    for part in parts[:-1]:
        if isinstance(node, list) and part.isdigit():
            index = int(part)
            if index >= len(node):
                if not create:
                    return None, parts[-1]
                node.extend([None] * (index + 1 - len(node)))
            if node[index] is None and create:
                node[index] = {}
            node = node[index]
        elif isinstance(node, dict):
            if part not in node or node[part] is None:
                if not create:
                    return None, parts[-1]
                node[part] = {}
            node = node[part]
        else:
            if not create:
                return None, parts[-1]
            raise InvalidModifierError(f"Cannot create field {part!r} in {path!r}")
    return node, parts[-1]


def _get(container: Any, key: str) -> Any:
    if isinstance(container, dict):
        return container.get(key, _MISSING)
    if isinstance(container, list) and key.isdigit() and int(key) < len(container):
        return container[int(key)]
    return _MISSING


def _put(container: Any, key: str, value: Any, path: str) -> None:
    if isinstance(container, dict):
        container[key] = value
    elif isinstance(container, list) and key.isdigit():
        index = int(key)
        if index >= len(container):
            container.extend([None] * (index + 1 - len(container)))
        container[index] = value
    else:
        raise InvalidModifierError(f"Cannot set field {path!r}")


# ============================================================================
# OPERATORS
# ============================================================================


def _set(doc: Document, path: str, value: Any) -> None:
    container, key = _parent(doc, path, create=True)
    _put(container, key, value, path)


def _unset(doc: Document, path: str, value: Any) -> None:
    container, key = _parent(doc, path, create=False)
    if isinstance(container, dict):
        container.pop(key, None)
    elif isinstance(container, list) and key.isdigit() and int(key) < len(container):
        container[int(key)] = None


def _inc(doc: Document, path: str, amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidModifierError(f"$inc amount for {path!r} must be a number")
    container, key = _parent(doc, path, create=True)
    current = _get(container, key)
    if current is _MISSING:
        current = 0
    elif isinstance(current, bool) or not isinstance(current, (int, float)):
        raise InvalidModifierError(f"Cannot $inc non-numeric field {path!r}")
    _put(container, key, current + amount, path)


def _array_at(doc: Document, path: str, operator: str) -> List[Any]:
    container, key = _parent(doc, path, create=True)
    current = _get(container, key)
    if current is _MISSING:
        current = []
        _put(container, key, current, path)
    elif not isinstance(current, list):
        raise InvalidModifierError(f"Cannot apply {operator} to non-array field {path!r}")
    return current


def _each(value: Any) -> List[Any]:
    if isinstance(value, Mapping) and "$each" in value:
        items = value["$each"]
        if not isinstance(items, list):
            raise InvalidModifierError("$each expects a list")
        return items
    return [value]


def _push(doc: Document, path: str, value: Any) -> None:
    _array_at(doc, path, "$push").extend(_each(value))


def _add_to_set(doc: Document, path: str, value: Any) -> None:
    array = _array_at(doc, path, "$addToSet")
    for item in _each(value):
        if not any(values_equal(existing, item) for existing in array):
            array.append(item)


def _pull(doc: Document, path: str, condition: Any) -> None:
    container, key = _parent(doc, path, create=False)
    current = _get(container, key) if container is not None else _MISSING
    if current is _MISSING:
        return
    if not isinstance(current, list):
        raise InvalidModifierError(f"Cannot apply $pull to non-array field {path!r}")

    if _is_operator_document(condition):
        matcher = compile_selector({"value": condition})
        keep = [item for item in current if not matcher({"value": item})]
    elif isinstance(condition, Mapping):
        matcher = compile_selector(condition)
        keep = [item for item in current if not (isinstance(item, Mapping) and matcher(item))]
    else:
        keep = [item for item in current if not values_equal(item, condition)]
    current[:] = keep


_APPLY = {
    "$set": _set,
    "$setOnInsert": _set,
    "$unset": _unset,
    "$inc": _inc,
    "$push": _push,
    "$addToSet": _add_to_set,
    "$pull": _pull,
}


# ============================================================================
# UPSERT SEED
# ============================================================================


def upsert_seed(selector: Mapping[str, Any], modifier: Mapping[str, Any]) -> Document:
    """
    The document an upsert inserts when nothing matched.

    Plain equality fields of the selector seed the document, then the
    modifier is applied with insert semantics. A replacement modifier is used
    as-is, keeping only the selector's ``_id``.
    """
    seed: Document = {}
    for key, value in selector.items():
        if key.startswith("$") or _is_operator_document(value):
            continue
        _set(seed, key, copy.deepcopy(value))

    if is_replacement(modifier):
        base = {"_id": seed["_id"]} if "_id" in seed else {}
        return _replace(base, modifier)
    return apply_modifier(seed, modifier, is_insert=True)
