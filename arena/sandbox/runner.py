"""Harness executed inside the scorer container.

Usage: python -I runner.py payload.json

The payload holds ``code``, ``answer_rows``, ``submission_rows`` and
``cpu_seconds``. The scorer's return value is written to stdout as a single
JSON line ``{"score": ...}``; failures as ``{"error": ...}`` with exit code 1.
Anything the scorer itself prints goes to stderr.

This file is copied into the container as-is, so it must only import the
standard library.
"""
import builtins
import contextlib
import json
import math
import sys
import types

ALLOWED_MODULES = frozenset({
    "bisect",
    "collections",
    "decimal",
    "fractions",
    "functools",
    "heapq",
    "itertools",
    "json",
    "math",
    "operator",
    "re",
    "statistics",
})

BLOCKED_BUILTINS = frozenset({
    "breakpoint",
    "compile",
    "eval",
    "exec",
    "exit",
    "help",
    "input",
    "open",
    "quit",
})


def _guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
    if level != 0 or name.split(".")[0] not in ALLOWED_MODULES:
        raise ImportError(f"import of {name!r} is not allowed in scoring code")
    return __import__(name, globals, locals, fromlist, level)


def _safe_builtins() -> dict:
    safe = {k: getattr(builtins, k) for k in dir(builtins) if k not in BLOCKED_BUILTINS}
    safe["__import__"] = _guarded_import
    return safe


def load_scorer(code: str):
    """Execute scoring code and return its scoring function.

    ``score`` is preferred; otherwise the code must define exactly one
    top-level function.
    """
    namespace = {"__builtins__": _safe_builtins(), "__name__": "scorer"}
    exec(compile(code, "<scoring code>", "exec"), namespace)

    scorer = namespace.get("score")
    if callable(scorer):
        return scorer
    functions = [
        value for key, value in namespace.items()
        if isinstance(value, types.FunctionType) and not key.startswith("_")
    ]
    if len(functions) == 1:
        return functions[0]
    raise ValueError("scoring code must define score(answer_rows, submission_rows)")


def run_scoring_code(code: str, answer_rows: list, submission_rows: list):
    scorer = load_scorer(code)
    return scorer(answer_rows, submission_rows)


def as_score(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"scoring function must return a number, got {type(value).__name__}")
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"scoring function returned a non-finite value: {value}")
    return value


def _apply_limits(cpu_seconds) -> None:
    if not cpu_seconds:
        return
    import resource

    limit = max(1, int(math.ceil(cpu_seconds)))
    resource.setrlimit(resource.RLIMIT_CPU, (limit, limit))


def main(argv: list[str]) -> int:
    if len(argv) != 2:
        print(json.dumps({"error": "usage: runner.py payload.json"}))
        return 2
    try:
        with builtins.open(argv[1], encoding="utf-8") as f:
            payload = json.load(f)
        _apply_limits(payload.get("cpu_seconds"))
        with contextlib.redirect_stdout(sys.stderr):
            value = run_scoring_code(
                payload["code"],
                payload["answer_rows"],
                payload["submission_rows"],
            )
        score = as_score(value)
    except BaseException as e:  # includes SystemExit raised by scorer code
        print(json.dumps({"error": f"{type(e).__name__}: {e}"}))
        return 1
    print(json.dumps({"score": score}))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
