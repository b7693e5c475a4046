import math

import pytest

from arena.core.errors import (
    DimensionMismatchError,
    FormatError,
    InvalidNumericValueError,
    ScoringNotConfiguredError,
)
from arena.scoring.csv_parser import TabularValue
from arena.scoring.evaluators import (
    HIGHER_IS_BETTER,
    Metric,
    accuracy,
    auc,
    evaluate,
    f1_score,
    iou,
    map50,
    rmse,
    to_float,
)


@pytest.mark.parametrize("func", [rmse, accuracy, f1_score, auc])
def test_length_mismatch_is_rejected_before_parsing(func):
    # "oops" would fail numeric parsing if the dimension check ran second
    with pytest.raises(DimensionMismatchError):
        func(["oops", "1"], ["1"])


@pytest.mark.parametrize("func", [rmse, accuracy, f1_score, auc])
def test_empty_input_is_rejected(func):
    with pytest.raises(FormatError):
        func([], [])


def test_dimension_message_reports_both_counts():
    with pytest.raises(DimensionMismatchError) as exc:
        accuracy(["a"] * 98, ["a"] * 100)
    assert "98" in exc.value.message
    assert "100" in exc.value.message


def test_rmse():
    assert rmse(["1", "2", "3"], ["1", "2", "3"]) == 0
    assert rmse(["0"], ["3"]) == 3
    assert rmse(["1.0", "2.0"], ["1.0", "4.0"]) == pytest.approx(math.sqrt(2))


def test_rmse_rejects_non_numeric_cells():
    with pytest.raises(InvalidNumericValueError):
        rmse(["1", "abc"], ["1", "2"])


def test_accuracy():
    assert accuracy(["cat", "dog", "cat"], ["cat", "cat", "cat"]) == pytest.approx(2 / 3)


@pytest.mark.parametrize("labels", [["a"], ["x", "y", "z"], ["1", "0", "1", "1"]])
def test_accuracy_of_identical_sequences_is_one(labels):
    assert accuracy(labels, list(labels)) == 1


def test_accuracy_is_exact_string_match():
    assert accuracy(["Cat", "1.0"], ["cat", "1"]) == 0


def test_f1():
    # tp=1 fp=1 fn=0: precision 0.5, recall 1
    assert f1_score(["1", "1", "0"], ["1", "0", "0"]) == pytest.approx(2 / 3)


def test_f1_positive_vocabulary():
    assert f1_score(["yes", "TRUE", "Positive"], ["1", "true", "positive"]) == 1


def test_f1_is_zero_without_true_positives():
    assert f1_score(["0", "0"], ["0", "0"]) == 0
    assert f1_score(["0", "0"], ["1", "1"]) == 0
    assert f1_score(["1", "0"], ["0", "1"]) == 0


def test_f1_treats_unknown_labels_as_negative():
    assert f1_score(["cat", "dog"], ["cat", "dog"]) == 0


def test_auc_perfect_and_inverted():
    assert auc(["0.9", "0.8", "0.2", "0.1"], ["1", "1", "0", "0"]) == 1
    assert auc(["0.1", "0.2", "0.8", "0.9"], ["1", "1", "0", "0"]) == 0


@pytest.mark.parametrize("actual", [["1", "1", "1"], ["0", "0", "0"]])
def test_auc_single_class_is_half(actual):
    assert auc(["0.3", "0.6", "0.9"], actual) == 0.5


def test_auc_ties_keep_input_order():
    assert auc(["0.5", "0.5"], ["1", "0"]) == 1
    assert auc(["0.5", "0.5"], ["0", "1"]) == 0


def test_auc_partial_ordering():
    # one of four positive/negative pairs is misordered
    assert auc(["0.9", "0.4", "0.6", "0.1"], ["1", "1", "0", "0"]) == pytest.approx(0.75)


@pytest.mark.parametrize("value", ["", "  ", "1_000", "abc", "nan", "inf", "-Infinity"])
def test_to_float_rejects(value):
    with pytest.raises(InvalidNumericValueError):
        to_float(value)


@pytest.mark.parametrize("value,expected", [("1", 1.0), (" 2.5 ", 2.5), ("1e3", 1000.0), ("-0.5", -0.5)])
def test_to_float_accepts(value, expected):
    assert to_float(value) == expected


def _box_row(image_id, cls, x1, y1, x2, y2, confidence=None):
    row = {"image_id": image_id, "class": cls, "x_min": str(x1), "y_min": str(y1),
           "x_max": str(x2), "y_max": str(y2)}
    if confidence is not None:
        row["confidence"] = str(confidence)
    return row


def test_iou():
    a = {"x_min": 0, "y_min": 0, "x_max": 2, "y_max": 2}
    b = {"x_min": 1, "y_min": 0, "x_max": 3, "y_max": 2}
    assert iou(a, b) == pytest.approx(2 / 6)
    assert iou(a, {"x_min": 5, "y_min": 5, "x_max": 6, "y_max": 6}) == 0


def test_map50_exact_match_is_one():
    truth = [_box_row("img1", "car", 0, 0, 10, 10), _box_row("img2", "dog", 5, 5, 15, 15)]
    preds = [_box_row("img1", "car", 0, 0, 10, 10, 0.9), _box_row("img2", "dog", 5, 5, 15, 15, 0.8)]
    assert map50(preds, truth) == pytest.approx(1.0)


def test_map50_misses_lower_the_score():
    truth = [_box_row("img1", "car", 0, 0, 10, 10), _box_row("img1", "car", 20, 20, 30, 30)]
    preds = [_box_row("img1", "car", 0, 0, 10, 10, 0.9)]
    assert map50(preds, truth) == pytest.approx(0.5)


def test_map50_boxes_must_share_an_image():
    truth = [_box_row("img1", "car", 0, 0, 10, 10)]
    preds = [_box_row("img2", "car", 0, 0, 10, 10, 0.9)]
    assert map50(preds, truth) == 0


def test_map50_averages_over_truth_classes():
    truth = [_box_row("img1", "car", 0, 0, 10, 10), _box_row("img1", "dog", 20, 20, 30, 30)]
    preds = [_box_row("img1", "car", 0, 0, 10, 10, 0.9)]
    assert map50(preds, truth) == pytest.approx(0.5)


def test_map50_without_truth_classes_is_zero():
    assert map50([_box_row("img1", "car", 0, 0, 1, 1, 0.5)], []) == 0


def test_map50_accepts_coordinate_aliases():
    truth = [{"image_id": "a", "label": "x", "x1": "0", "y1": "0", "x2": "4", "y2": "4"}]
    preds = [{"image_id": "a", "label": "x", "xmin": "0", "ymin": "0", "xmax": "4", "ymax": "4",
              "confidence": "0.7"}]
    assert map50(preds, truth) == pytest.approx(1.0)


def test_evaluate_dispatches_on_target_column():
    submission = TabularValue(["id", "prediction"], [["1", "1.0"], ["2", "2.0"]])
    answer = TabularValue(["id", "target"], [["1", "1.0"], ["2", "4.0"]])
    assert evaluate(Metric.RMSE, submission, answer) == pytest.approx(math.sqrt(2))


def test_evaluate_map50_uses_whole_rows():
    headers = ["image_id", "class", "x_min", "y_min", "x_max", "y_max", "confidence"]
    answer = TabularValue(headers[:-1], [["i", "c", "0", "0", "2", "2"]])
    submission = TabularValue(headers, [["i", "c", "0", "0", "2", "2", "0.9"],
                                        ["i", "c", "5", "5", "6", "6", "0.1"]])
    assert evaluate(Metric.MAP50, submission, answer) == pytest.approx(1.0)


def test_evaluate_refuses_custom():
    tab = TabularValue(["target"], [["1"]])
    with pytest.raises(ValueError):
        evaluate(Metric.CUSTOM, tab, tab)


def test_metric_parse():
    assert Metric.parse(" RMSE ") is Metric.RMSE
    assert Metric.parse("map50") is Metric.MAP50
    with pytest.raises(ScoringNotConfiguredError):
        Metric.parse("logloss")
    with pytest.raises(ScoringNotConfiguredError):
        Metric.parse(None)


def test_only_rmse_is_lower_is_better():
    assert [m for m, higher in HIGHER_IS_BETTER.items() if not higher] == [Metric.RMSE]
