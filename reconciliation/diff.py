"""
Field-level change diff between a stored document and its replacement.

Only fields present in the new document are compared: the upstream API is
authoritative for what it returns, so a field that disappears from a fetch is
left as-is rather than reported as removed. Bookkeeping fields and any
underscore-prefixed keys are never diffed.
"""

from typing import Any, Optional

# Max changed fields recorded per audit entry
DIFF_FIELD_LIMIT = 40

BOOKKEEPING_FIELDS = frozenset({
    'updatedAt',
    'createdAt',
    'deletedAt',
    'lastSeenRun',
    '_id',
    '__v',
})

_PRIMITIVES = (str, int, float, bool, type(None))


def is_bookkeeping(field: str) -> bool:
    return field in BOOKKEEPING_FIELDS or field.startswith('_')


def values_equal(a: Any, b: Any) -> bool:
    """Identity or primitive equality first, then a structural comparison."""
    if a is b:
        return True

    if isinstance(a, _PRIMITIVES) and isinstance(b, _PRIMITIVES):
        if isinstance(a, bool) or isinstance(b, bool):
            return type(a) is type(b) and a == b
        if isinstance(a, (int, float)) and isinstance(b, (int, float)):
            return a == b
        return type(a) is type(b) and a == b

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(values_equal(x, y) for x, y in zip(a, b))

    return a == b


def diff_documents(
    before: Optional[dict],
    after: dict,
    limit: int = DIFF_FIELD_LIMIT,
) -> tuple[list[str], dict[str, dict]]:
    """
    Compute changed fields between two documents.

    Args:
        before: Stored document, or None for a new insert
        after: Document about to be written
        limit: Cap on recorded fields

    Returns:
        (changed_fields, changes) where changes maps field -> {"before", "after"}.
        Both are capped at limit; the field that reaches the cap is included.
    """
    changed_fields: list[str] = []
    changes: dict[str, dict] = {}

    for field, new_value in after.items():
        if is_bookkeeping(field):
            continue
        if before is not None:
            if field not in before:
                old_value = None
            else:
                old_value = before[field]
                if values_equal(old_value, new_value):
                    continue
        else:
            old_value = None

        changed_fields.append(field)
        changes[field] = {'before': old_value, 'after': new_value}
        if len(changed_fields) >= limit:
            break

    return changed_fields, changes
