"""
Deep merge of JSON-like documents.

Used to apply partial status/metadata updates onto the last-read snapshot of
a remote document without clobbering unrelated fields.
"""
from typing import Any, Mapping, Optional

_MISSING = object()


def merge(base: Mapping[str, Any], overlay: Mapping[str, Any], keyed_arrays: Optional[Mapping[str, str]] = None) -> dict:
    """
    Merge `overlay` onto `base` and return a new dict. Neither input is mutated.

    - scalars: overlay wins
    - dict vs dict: merged recursively
    - list vs list at a field named in `keyed_arrays`, both holding only dicts:
      elements are aligned on `keyed_arrays[field]` and same-key elements are
      merged recursively
    - anything else: replaced by the overlay value

    Example:
        merge({"files": [{"name": "a", "v": 1}]},
              {"files": [{"name": "a", "v": 2}, {"name": "b"}]},
              {"files": "name"})
        -> {"files": [{"name": "a", "v": 2}, {"name": "b"}]}
    """
    rules = keyed_arrays or {}
    result = dict(base)

    for field, new in overlay.items():
        old = result.get(field, _MISSING)

        if isinstance(old, Mapping) and isinstance(new, Mapping):
            result[field] = merge(old, new, rules)
        elif (
            field in rules
            and isinstance(old, list)
            and isinstance(new, list)
            and _all_documents(old)
            and _all_documents(new)
        ):
            result[field] = _merge_keyed(old, new, rules[field], rules)
        else:
            result[field] = new

    return result


def _merge_keyed(base: list, overlay: list, key: str, rules: Mapping[str, str]) -> list:
    # Aligned elements keep base order; overlay-only ones follow in overlay order.
    # Elements without the key cannot be aligned and are kept as they are.
    merged: dict[Any, dict] = {}
    unkeyed: list = []

    for item in base:
        if key in item:
            merged[_hashable(item[key])] = dict(item)
        else:
            unkeyed.append(item)

    overlay_unkeyed: list = []
    for item in overlay:
        if key not in item:
            if item not in unkeyed and item not in overlay_unkeyed:
                overlay_unkeyed.append(item)
            continue
        ident = _hashable(item[key])
        if ident in merged:
            merged[ident] = merge(merged[ident], item, rules)
        else:
            merged[ident] = dict(item)

    return list(merged.values()) + unkeyed + overlay_unkeyed


def _all_documents(items: list) -> bool:
    return all(isinstance(item, Mapping) for item in items)


def _hashable(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return repr(value)
    return value
