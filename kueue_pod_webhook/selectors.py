"""
Evaluation of Kubernetes LabelSelector objects against a label set.

Reference:
- https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#resources-that-support-set-based-requirements
"""

import re
from typing import Any

from .errors import SelectorError
from .jobframework import is_dns1123_subdomain

_SET_OPERATORS = ("In", "NotIn")
_EXISTENCE_OPERATORS = ("Exists", "DoesNotExist")

LABEL_NAME_MAX_LENGTH = 63
_LABEL_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")


def _check_label_key(key: Any) -> str:
    if not isinstance(key, str) or key == "":
        raise SelectorError("label key must be a non-empty string")
    prefix, sep, name = key.rpartition("/")
    if sep and (prefix == "" or is_dns1123_subdomain(prefix)):
        raise SelectorError(f"invalid label key {key!r}: prefix must be a DNS-1123 subdomain")
    if len(name) > LABEL_NAME_MAX_LENGTH or not _LABEL_NAME_RE.match(name):
        raise SelectorError(f"invalid label key {key!r}: name part must be a valid label name")
    return key


def _check_label_value(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise SelectorError(f"value for label key {key!r} must be a string, got: {value!r}")
    if value != "" and (
        len(value) > LABEL_NAME_MAX_LENGTH or not _LABEL_NAME_RE.match(value)
    ):
        raise SelectorError(f"invalid label value {value!r} for key {key!r}")
    return value


def _check_expression(expr: Any) -> tuple[str, str, list[str]]:
    if not isinstance(expr, dict):
        raise SelectorError(f"match expression must be an object, got: {expr!r}")

    key = expr.get("key")
    op = expr.get("operator")
    values = expr.get("values") or []

    _check_label_key(key)
    if not isinstance(values, list):
        raise SelectorError(f"values for key {key!r} must be a list")

    if op in _SET_OPERATORS:
        if not values:
            raise SelectorError(
                f"for '{op}' operator, values set can't be empty (key {key!r})"
            )
    elif op in _EXISTENCE_OPERATORS:
        if values:
            raise SelectorError(
                f"values set must be empty for '{op}' operator (key {key!r})"
            )
    else:
        raise SelectorError(f"{op!r} is not a valid label selector operator")

    return key, op, [_check_label_value(key, v) for v in values]


def selector_matches(selector: dict[str, Any] | None, labels: dict[str, str] | None) -> bool:
    """
    Return whether labels satisfy selector.

    A missing selector (None) matches nothing and an empty one matches
    everything. Malformed selectors raise SelectorError.
    """
    if selector is None:
        return False
    if not isinstance(selector, dict):
        raise SelectorError(f"label selector must be an object, got: {selector!r}")

    labels = labels or {}

    match_labels = selector.get("matchLabels") or {}
    if not isinstance(match_labels, dict):
        raise SelectorError("matchLabels must be an object")
    match_expressions = selector.get("matchExpressions") or []
    if not isinstance(match_expressions, list):
        raise SelectorError("matchExpressions must be a list")

    # Validated up front: a malformed selector fails for any label set.
    for key, value in match_labels.items():
        _check_label_value(_check_label_key(key), value)
    expressions = [_check_expression(e) for e in match_expressions]

    for key, value in match_labels.items():
        if labels.get(key) != value:
            return False

    for key, op, values in expressions:
        present = key in labels
        if op == "In" and not (present and labels[key] in values):
            return False
        if op == "NotIn" and present and labels[key] in values:
            return False
        if op == "Exists" and not present:
            return False
        if op == "DoesNotExist" and present:
            return False

    return True
