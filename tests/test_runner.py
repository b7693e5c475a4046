import json

import pytest

from arena.sandbox import runner

ANSWERS = [{"id": "1", "target": "1"}, {"id": "2", "target": "0"}]
PREDICTIONS = [{"id": "1", "target": "1"}, {"id": "2", "target": "1"}]

ACCURACY_CODE = """
def score(answer_rows, submission_rows):
    hits = sum(a["target"] == s["target"] for a, s in zip(answer_rows, submission_rows))
    return hits / len(answer_rows)
"""


def test_run_scoring_code():
    assert runner.run_scoring_code(ACCURACY_CODE, ANSWERS, PREDICTIONS) == 0.5


def test_single_function_with_other_name():
    code = "def my_metric(a, s):\n    return len(a) + len(s)\n"
    assert runner.run_scoring_code(code, ANSWERS, PREDICTIONS) == 4


def test_score_preferred_over_helpers():
    code = "def helper(x):\n    return x\n\ndef score(a, s):\n    return helper(0.75)\n"
    assert runner.run_scoring_code(code, ANSWERS, PREDICTIONS) == 0.75


def test_ambiguous_code_is_rejected():
    code = "def one(a, s):\n    return 1\n\ndef two(a, s):\n    return 2\n"
    with pytest.raises(ValueError):
        runner.load_scorer(code)


def test_allowed_imports():
    code = "import math\nfrom statistics import mean\n\ndef score(a, s):\n    return math.sqrt(mean([4, 4]))\n"
    assert runner.run_scoring_code(code, ANSWERS, PREDICTIONS) == 2


@pytest.mark.parametrize("module", ["os", "subprocess", "socket", "importlib"])
def test_blocked_imports(module):
    with pytest.raises(ImportError):
        runner.load_scorer(f"import {module}\n\ndef score(a, s):\n    return 1\n")


@pytest.mark.parametrize("call", ["open('/etc/passwd')", "eval('1')", "exec('x = 1')"])
def test_blocked_builtins(call):
    code = f"def score(a, s):\n    {call}\n    return 1\n"
    with pytest.raises(NameError):
        runner.run_scoring_code(code, ANSWERS, PREDICTIONS)


@pytest.mark.parametrize("value", [True, "0.5", None, float("nan")])
def test_as_score_rejects(value):
    with pytest.raises((TypeError, ValueError)):
        runner.as_score(value)


def write_payload(tmp_path, code):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps({
        "code": code,
        "answer_rows": ANSWERS,
        "submission_rows": PREDICTIONS,
        "cpu_seconds": None,
    }))
    return str(path)


def last_json_line(out):
    return json.loads(out.strip().splitlines()[-1])


def test_main_prints_score(tmp_path, capsys):
    code = ACCURACY_CODE + "\nprint('debug output from the scorer')\n"
    assert runner.main(["runner.py", write_payload(tmp_path, code)]) == 0
    captured = capsys.readouterr()
    assert captured.out.strip() == '{"score": 0.5}'
    assert "debug output" in captured.err


def test_main_reports_scorer_errors(tmp_path, capsys):
    code = "def score(a, s):\n    return 1 / 0\n"
    assert runner.main(["runner.py", write_payload(tmp_path, code)]) == 1
    assert "ZeroDivisionError" in last_json_line(capsys.readouterr().out)["error"]


def test_main_catches_exit_from_scorer(tmp_path, capsys):
    code = "def score(a, s):\n    raise SystemExit(0)\n"
    assert runner.main(["runner.py", write_payload(tmp_path, code)]) == 1
    assert "SystemExit" in last_json_line(capsys.readouterr().out)["error"]


def test_main_usage(capsys):
    assert runner.main(["runner.py"]) == 2
