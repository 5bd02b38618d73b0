from typing import Dict, Any, Mapping, Optional, Type
from pydantic import BaseModel

# Fields whose sub-keys may be addressed with dotted paths ("metadata.owner")
NESTED_FIELDS = {"metadata", "user"}

_MISSING = object()


def _field_names(model: Type[BaseModel]) -> Dict[str, str]:
    """Map python and wire names of a model's fields to the python name"""

    names = {}
    for name, info in model.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def normalize_predicate(predicate: Any, model: Type[BaseModel]) -> Optional[Dict[str, Any]]:
    """
    Translate a client predicate into python field names.

    Returns None when the predicate is not a mapping or names a field the
    model does not have.
    """
    if not isinstance(predicate, Mapping):
        return None

    names = _field_names(model)
    normalized: Dict[str, Any] = {}

    for key, value in predicate.items():
        if not isinstance(key, str):
            return None
        head, _, rest = key.partition(".")
        name = names.get(head)
        if name is None:
            return None
        if rest:
            if name not in NESTED_FIELDS:
                return None
            normalized[f"{name}.{rest}"] = value
        else:
            normalized[name] = value

    return normalized


def _lookup(document: Dict[str, Any], key: str) -> Any:
    head, _, rest = key.partition(".")
    value = document.get(head, _MISSING)
    if not rest:
        return value
    if not isinstance(value, dict):
        return _MISSING
    return value.get(rest, _MISSING)


def matches(document: Dict[str, Any], predicate: Dict[str, Any]) -> bool:
    """Equality match; a scalar matches a list field when it is an element of it"""

    for key, expected in predicate.items():
        actual = _lookup(document, key)
        if actual is _MISSING:
            return False
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True
