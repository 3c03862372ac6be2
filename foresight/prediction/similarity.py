"""
Value comparison helpers shared by the aggregator, scorer and experiments.

Prediction values are opaque beyond equality and distance, so everything that
compares two of them goes through these functions.
"""

import json
from typing import Any, Hashable, Sequence


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp a value into [lower, upper]."""
    return max(lower, min(upper, value))


def is_number(value: Any) -> bool:
    """True for ints and floats; booleans are categorical, not numeric."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def value_kind(value: Any) -> str:
    """Coarse kind of a value: bool, number, sequence, map, or the type name."""
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if is_sequence(value):
        return "sequence"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


def same_kind(first: Any, second: Any) -> bool:
    """
    True when two values can be scored against each other.

    A conversion flag (bool) never measures the accuracy of a number, label
    or structure.
    """
    return value_kind(first) == value_kind(second)


def canonical_key(value: Any) -> Hashable:
    """
    Build a hashable key under which structurally equal values collide.

    Numbers are normalised so that 1 and 1.0 compare equal, dict keys are
    sorted, and lists and tuples are treated alike.
    """
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return (type(value).__name__, value)
    if is_number(value):
        return ("num", float(value))
    if is_sequence(value):
        return ("seq", tuple(canonical_key(v) for v in value))
    if isinstance(value, dict):
        return ("map", tuple(sorted((str(k), canonical_key(v)) for k, v in value.items())))
    return ("obj", repr(value))


def serialize(value: Any) -> str:
    """Stable textual form used for character-set comparisons."""
    try:
        return json.dumps(value, sort_keys=True, default=repr)
    except (TypeError, ValueError):
        return repr(value)


def prediction_similarity(first: Any, second: Any) -> float:
    """
    Similarity of two prediction values in [0, 1].

    Numbers use the normalised absolute difference, sequences the positional
    match ratio, anything else the Jaccard similarity of the characters of
    their serialised forms.
    """
    if is_number(first) and is_number(second):
        max_diff = max(abs(first), abs(second), 1.0)
        return clamp(1.0 - abs(first - second) / max_diff)

    if is_sequence(first) and is_sequence(second):
        max_length = max(len(first), len(second))
        if max_length == 0:
            return 1.0
        matches = sum(
            1 for a, b in zip(first, second) if canonical_key(a) == canonical_key(b)
        )
        return matches / max_length

    if canonical_key(first) == canonical_key(second):
        return 1.0

    chars_first = set(serialize(first))
    chars_second = set(serialize(second))
    union = chars_first | chars_second
    if not union:
        return 0.0
    return len(chars_first & chars_second) / len(union)


def prediction_accuracy(predicted: Any, actual: Any) -> float:
    """
    Accuracy of a prediction once the actual outcome is known.

    Numeric: 1 - relative error, floored at 0. Sequences: element match ratio
    over the longer length. Anything else: exact structural match.
    """
    if is_number(predicted) and is_number(actual):
        if actual == 0:
            return 1.0 if predicted == 0 else clamp(1.0 - abs(predicted))
        error = abs(predicted - actual) / abs(actual)
        return clamp(1.0 - error)

    if is_sequence(predicted) and is_sequence(actual):
        longest = max(len(predicted), len(actual))
        if longest == 0:
            return 1.0
        matches = sum(
            1 for p, a in zip(predicted, actual) if canonical_key(p) == canonical_key(a)
        )
        return matches / longest

    return 1.0 if canonical_key(predicted) == canonical_key(actual) else 0.0


def mean_pairwise_similarity(values: Sequence[Any], default: float = 0.5) -> float:
    """Mean similarity over all unordered pairs; ``default`` with fewer than two."""
    if len(values) < 2:
        return default
    total = 0.0
    comparisons = 0
    for i in range(len(values)):
        for j in range(i + 1, len(values)):
            total += prediction_similarity(values[i], values[j])
            comparisons += 1
    return total / comparisons
