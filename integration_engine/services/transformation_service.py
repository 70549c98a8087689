"""Extraction, filter and transform pipeline over arbitrary JSON values.

Every public stage is wrapped in :func:`fail_open`: if a stage raises, the
error is logged and the stage's input is returned unchanged so that the
integration still delivers something.
"""

import functools
import re
from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class _NotFound:
    """Marker for a path that does not resolve."""

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()

_INDEX_RE = re.compile(r"\[(\d+)\]")
_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")

DATE_FORMATS = {
    "en-US": "%m/%d/%Y",
    "en-GB": "%d/%m/%Y",
    "fr-FR": "%d/%m/%Y",
    "es-ES": "%d/%m/%Y",
    "de-DE": "%d.%m.%Y",
    "ja-JP": "%Y/%m/%d",
    "zh-CN": "%Y/%m/%d",
}


def fail_open(stage: Callable) -> Callable:
    """Return the stage input untouched when the stage raises."""

    @functools.wraps(stage)
    def wrapper(value: Any, *args, **kwargs):
        try:
            return stage(value, *args, **kwargs)
        except Exception:
            logger.exception(f"Pipeline stage {stage.__name__} failed; passing input through")
            return value

    return wrapper


def _option(spec: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in spec:
            return spec[name]
    return None


# Extraction

def _walk(value: Any, path: str) -> Any:
    current = value
    for segment in path.split("."):
        if segment == "":
            continue
        match = _SEGMENT_RE.match(segment)
        if not match:
            return NOT_FOUND
        key, indexes = match.groups()

        if key:
            if isinstance(current, dict):
                if key not in current:
                    return NOT_FOUND
                current = current[key]
            elif isinstance(current, list) and key.isdigit():
                position = int(key)
                if position >= len(current):
                    return NOT_FOUND
                current = current[position]
            else:
                return NOT_FOUND

        for index in _INDEX_RE.findall(indexes):
            position = int(index)
            if not isinstance(current, list) or position >= len(current):
                return NOT_FOUND
            current = current[position]

    return current


@fail_open
def extract_path(value: JSONValue, path: str) -> Any:
    """Resolve a dotted path such as ``items[0].title``.

    Returns ``NOT_FOUND`` when any segment is missing; found values are
    returned as they are, including ``None``.
    """
    if not path:
        return value
    if isinstance(value, dict) and path in value:
        return value[path]
    return _walk(value, path)


# Filtering

def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _evaluate_condition(value: Any, operator: str, compare_value: Any) -> bool:
    """Evaluate one filterBy condition against an extracted field value."""
    if value is NOT_FOUND:
        return False

    if operator == "equals":
        return _strict_equals(value, compare_value)
    elif operator == "contains":
        if isinstance(value, str):
            return str(compare_value) in value
        if isinstance(value, list):
            return any(_strict_equals(item, compare_value) for item in value)
        return False
    elif operator in ("greater_than", "less_than"):
        left, right = _as_number(value), _as_number(compare_value)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    elif operator == "not_empty":
        return value is not None and value != "" and value != [] and value != {}

    logger.warning(f"Unknown filter operator: {operator}")
    return False


def _project(item: Any, fields: List[str]) -> Any:
    if isinstance(item, dict):
        return {name: item[name] for name in fields if name in item}
    return item


@fail_open
def apply_filters(value: JSONValue, spec: Optional[Dict[str, Any]]) -> JSONValue:
    """Apply ``filterBy``, then ``limit``, then the ``fields`` allow-list."""
    if not spec:
        return value

    result = value
    condition = _option(spec, "filterBy", "filter_by")
    if condition and isinstance(result, list):
        field = condition.get("field", "")
        operator = condition.get("operator", "equals")
        compare_value = condition.get("value")
        result = [
            item for item in result
            if _evaluate_condition(extract_path(item, field), operator, compare_value)
        ]

    limit = spec.get("limit")
    if limit is not None and isinstance(result, list):
        result = result[:max(int(limit), 0)]

    fields = spec.get("fields")
    if fields:
        if isinstance(result, list):
            result = [_project(item, fields) for item in result]
        else:
            result = _project(result, fields)

    return result


# Transformation

def _parse_date(value: Any) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _format_date(value: Any, locale: Optional[str]) -> str:
    parsed = _parse_date(value)
    pattern = DATE_FORMATS.get(locale or "", "%Y-%m-%d")
    return parsed.strftime(pattern)


def _transform_value(value: Any, rule: Dict[str, Any]) -> Any:
    operation = rule.get("operation") or rule.get("type")
    if value is None:
        return value

    if operation == "multiply":
        number = _as_number(value)
        if number is None:
            return value
        product = number * float(rule.get("factor", 1))
        return int(product) if product.is_integer() and isinstance(value, int) else product
    elif operation == "formatDate":
        return _format_date(value, rule.get("locale"))
    elif operation == "uppercase":
        return value.upper() if isinstance(value, str) else value
    elif operation == "lowercase":
        return value.lower() if isinstance(value, str) else value

    logger.warning(f"Unknown value transform: {operation}")
    return value


def _transform_object(item: Any, mappings: Dict[str, str], rules: List[Dict[str, Any]]) -> Any:
    if not isinstance(item, dict):
        return item

    renamed = {mappings.get(key, key): val for key, val in item.items()}
    for rule in rules:
        field = rule.get("field")
        if field in renamed:
            renamed[field] = _transform_value(renamed[field], rule)
    return renamed


@fail_open
def apply_transforms(value: JSONValue, spec: Optional[Dict[str, Any]]) -> JSONValue:
    """Rename keys via ``fieldMappings`` and apply ``valueTransforms``."""
    if not spec:
        return value

    mappings = _option(spec, "fieldMappings", "field_mappings") or {}
    rules = _option(spec, "valueTransforms", "value_transforms") or []

    if isinstance(value, list):
        return [_transform_object(item, mappings, rules) for item in value]
    return _transform_object(value, mappings, rules)


def run_pipeline(
    value: JSONValue,
    data_path: Optional[str] = None,
    filter_spec: Optional[Dict[str, Any]] = None,
    transform_spec: Optional[Dict[str, Any]] = None,
) -> Any:
    """Extract, filter and transform; returns ``NOT_FOUND`` if the path misses."""
    if data_path:
        value = extract_path(value, data_path)
        if value is NOT_FOUND:
            logger.info(f"Extraction path {data_path!r} did not resolve")
            return NOT_FOUND
    value = apply_filters(value, filter_spec)
    return apply_transforms(value, transform_spec)
