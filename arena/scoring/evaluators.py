import functools
import math
from enum import Enum
from typing import Sequence

from arena.core.errors import (
    DimensionMismatchError,
    FormatError,
    InvalidNumericValueError,
    ScoringNotConfiguredError,
)
from arena.scoring.columns import row_objects, target_column
from arena.scoring.csv_parser import TabularValue


class Metric(str, Enum):
    RMSE = "rmse"
    ACCURACY = "accuracy"
    F1 = "f1"
    AUC = "auc"
    MAP50 = "map50"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | None) -> "Metric":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ScoringNotConfiguredError(f"Unknown evaluation metric: {value!r}", metric=value)


HIGHER_IS_BETTER = {
    Metric.RMSE: False,
    Metric.ACCURACY: True,
    Metric.F1: True,
    Metric.AUC: True,
    Metric.MAP50: True,
    Metric.CUSTOM: True,
}

# Metrics scored on whole rows rather than a single target column.
FULL_ROW_METRICS = frozenset({Metric.MAP50, Metric.CUSTOM})

# Detection submissions list boxes, so their row count is not tied to the answer's.
ROW_ALIGNED_METRICS = frozenset(set(Metric) - {Metric.MAP50})

POSITIVE_LABELS = frozenset({"1", "true", "yes", "positive"})

MAP_IOU_THRESHOLD = 0.5


def check_dimensions(submitted: int, expected: int) -> None:
    if submitted != expected:
        raise DimensionMismatchError(submitted=submitted, expected=expected)
    if expected == 0:
        raise FormatError("Nothing to score: no data rows")


def paired(func):
    """Reject predicted/actual pairs of differing length before any work."""

    @functools.wraps(func)
    def wrapper(predicted, actual):
        check_dimensions(len(predicted), len(actual))
        return func(predicted, actual)

    return wrapper


def to_float(value) -> float:
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            raise InvalidNumericValueError(f"Invalid numeric value in CSV: {value!r}", value=value)
        value = text
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidNumericValueError(f"Invalid numeric value in CSV: {value!r}", value=str(value))
    if not math.isfinite(number):
        raise InvalidNumericValueError(f"Non-finite numeric value in CSV: {value!r}", value=str(value))
    return number


def to_floats(values: Sequence) -> list[float]:
    return [to_float(v) for v in values]


@paired
def rmse(predicted: Sequence, actual: Sequence) -> float:
    pred = to_floats(predicted)
    act = to_floats(actual)
    squared = sum((p - a) ** 2 for p, a in zip(pred, act))
    return math.sqrt(squared / len(pred))


@paired
def accuracy(predicted: Sequence[str], actual: Sequence[str]) -> float:
    correct = sum(1 for p, a in zip(predicted, actual) if p == a)
    return correct / len(predicted)


def is_positive(label: str) -> bool:
    return str(label).strip().lower() in POSITIVE_LABELS


@paired
def f1_score(predicted: Sequence[str], actual: Sequence[str]) -> float:
    """Binary F1 with a fixed positive vocabulary.

    Labels outside ``1/true/yes/positive`` count as negative, so multi-class
    data or binary data labelled differently is scored as if every row were
    negative for the unknown class. Known limitation, kept as-is.
    """
    tp = fp = fn = 0
    for p, a in zip(predicted, actual):
        pred_pos = is_positive(p)
        act_pos = is_positive(a)
        if pred_pos and act_pos:
            tp += 1
        elif pred_pos:
            fp += 1
        elif act_pos:
            fn += 1

    precision = tp / (tp + fp) if (tp + fp) else 0.0
    recall = tp / (tp + fn) if (tp + fn) else 0.0
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


@paired
def auc(predicted: Sequence, actual: Sequence) -> float:
    """Rank-based ROC AUC.

    Rows are ranked by predicted score, highest first. Equal scores keep
    their original order (stable sort, no midranks). Returns 0.5 when only
    one class is present.
    """
    pred = to_floats(predicted)
    act = to_floats(actual)

    order = sorted(range(len(pred)), key=lambda i: pred[i], reverse=True)
    positives = negatives = 0
    sum_ranks = 0
    for rank, i in enumerate(order, start=1):
        if act[i] == 1:
            positives += 1
            sum_ranks += rank
        else:
            negatives += 1

    if positives == 0 or negatives == 0:
        return 0.5
    u = (sum_ranks - positives * (positives + 1) / 2) / (positives * negatives)
    return 1 - u


def _first(row: dict, *keys: str) -> str | None:
    for key in keys:
        value = row.get(key)
        if value:
            return value
    return None


def _box(row: dict) -> dict:
    coords = {}
    for name, aliases in (
        ("x_min", ("x_min", "xmin", "x1")),
        ("y_min", ("y_min", "ymin", "y1")),
        ("x_max", ("x_max", "xmax", "x2")),
        ("y_max", ("y_max", "ymax", "y2")),
    ):
        coords[name] = to_float(_first(row, *aliases) or "")
    confidence = row.get("confidence")
    return {
        "image_id": row.get("image_id", ""),
        "class": _first(row, "class", "label", "category") or "",
        "confidence": to_float(confidence) if confidence else 0.0,
        **coords,
    }


def iou(a: dict, b: dict) -> float:
    inter_w = max(0.0, min(a["x_max"], b["x_max"]) - max(a["x_min"], b["x_min"]))
    inter_h = max(0.0, min(a["y_max"], b["y_max"]) - max(a["y_min"], b["y_min"]))
    inter = inter_w * inter_h
    area_a = (a["x_max"] - a["x_min"]) * (a["y_max"] - a["y_min"])
    area_b = (b["x_max"] - b["x_min"]) * (b["y_max"] - b["y_min"])
    union = area_a + area_b - inter
    return inter / union if union > 0 else 0.0


def average_precision(predictions: list[dict], truths: list[dict], threshold: float) -> float:
    if not truths:
        return 1.0 if not predictions else 0.0
    if not predictions:
        return 0.0

    ranked = sorted(predictions, key=lambda p: p["confidence"], reverse=True)
    matched: set[int] = set()
    precisions: list[float] = []
    recalls: list[float] = []
    tp = fp = 0
    for pred in ranked:
        best_iou = 0.0
        best_idx = -1
        for idx, truth in enumerate(truths):
            if idx in matched or truth["image_id"] != pred["image_id"]:
                continue
            overlap = iou(pred, truth)
            if overlap > best_iou:
                best_iou = overlap
                best_idx = idx
        if best_idx >= 0 and best_iou >= threshold:
            matched.add(best_idx)
            tp += 1
        else:
            fp += 1
        precisions.append(tp / (tp + fp))
        recalls.append(tp / len(truths))

    # All-point interpolation: precision made non-increasing from the right.
    for i in range(len(precisions) - 2, -1, -1):
        precisions[i] = max(precisions[i], precisions[i + 1])

    ap = 0.0
    prev_recall = 0.0
    for precision, recall in zip(precisions, recalls):
        ap += (recall - prev_recall) * precision
        prev_recall = recall
    return ap


def map50(prediction_rows: Sequence[dict], truth_rows: Sequence[dict]) -> float:
    """Mean average precision at IoU 0.5 over classes present in the ground truth."""
    predictions = [_box(r) for r in prediction_rows]
    truths = [_box(r) for r in truth_rows]

    classes = sorted({t["class"] for t in truths})
    if not classes:
        return 0.0
    total = 0.0
    for cls in classes:
        total += average_precision(
            [p for p in predictions if p["class"] == cls],
            [t for t in truths if t["class"] == cls],
            MAP_IOU_THRESHOLD,
        )
    return total / len(classes)


def evaluate(metric: Metric, submission: TabularValue, answer: TabularValue) -> float:
    """Score a parsed submission against the parsed answer with a built-in metric.

    Row-aligned metrics read the target column of each file; full-row metrics
    read field-rows. Custom scoring runs in the sandbox, not here.
    """
    if metric is Metric.RMSE:
        return rmse(target_column(submission), target_column(answer))
    if metric is Metric.ACCURACY:
        return accuracy(target_column(submission), target_column(answer))
    if metric is Metric.F1:
        return f1_score(target_column(submission), target_column(answer))
    if metric is Metric.AUC:
        return auc(target_column(submission), target_column(answer))
    if metric is Metric.MAP50:
        return map50(row_objects(submission), row_objects(answer))
    if metric is Metric.CUSTOM:
        raise ValueError("custom metrics are scored by the sandbox")
    raise ScoringNotConfiguredError(f"Unsupported evaluation metric: {metric}", metric=str(metric))
