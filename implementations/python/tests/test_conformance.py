"""bplist conformance test suite.

Runs every vector in conformance/bplist_vectors.json: a complete input
buffer in hex, optional decode() options, and the expected result as a
tagged value or an error code.

Usage:
    python tests/test_conformance.py [--vectors-dir DIR]
    python -m pytest tests/test_conformance.py -v
    PYTHONPATH=. BPLIST_VECTORS_DIR=../../conformance python tests/test_conformance.py
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import unittest
from typing import Any, Dict, List, Optional, Tuple

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bplist import (
    UID,
    Bag,
    DecodeError,
    Map,
    Real,
    Timestamp,
    decode,
    format_value,
    values_equal,
)

# ── Locate conformance data ───────────────────────────────────

_VECTORS_DIR: Optional[str] = os.environ.get("BPLIST_VECTORS_DIR", None)
_VECTORS_FILE = "bplist_vectors.json"


def _find_vectors_dir() -> str:
    if _VECTORS_DIR:
        return _VECTORS_DIR
    candidates = [
        os.path.join(os.path.dirname(__file__), "..", "..", "..", "conformance"),
        os.path.join(os.path.dirname(__file__), "..", "..", "conformance"),
        os.path.join(os.path.dirname(__file__), "..", "conformance"),
    ]
    for d in candidates:
        if os.path.isfile(os.path.join(d, _VECTORS_FILE)):
            return d
    raise FileNotFoundError(
        "Cannot find conformance vectors. Set BPLIST_VECTORS_DIR or --vectors-dir."
    )


def _load_vectors() -> List[dict]:
    path = os.path.join(_find_vectors_dir(), _VECTORS_FILE)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)["vectors"]


# ── Tagged JSON -> value model ────────────────────────────────

def from_tagged(t: Dict[str, Any]) -> Any:
    (tag, body), = [(k, v) for k, v in t.items() if k != "width"]
    if tag == "null":
        return None
    if tag in ("bool", "int", "text"):
        return body
    if tag == "real":
        return Real(body, t["width"])
    if tag == "date":
        return Timestamp(body)
    if tag == "data":
        return bytes.fromhex(body)
    if tag == "uid":
        return UID(bytes.fromhex(body))
    if tag == "list":
        return [from_tagged(item) for item in body]
    if tag == "bag":
        return Bag(from_tagged(item) for item in body)
    if tag == "map":
        return Map((from_tagged(k), from_tagged(v)) for k, v in body)
    raise ValueError("unknown tag in vector: {}".format(tag))


def _run_vector(vec: dict) -> Dict[str, Any]:
    """Decode one vector.  Returns {"value": ...} or {"err": ...}."""
    raw = bytes.fromhex(vec["input_hex"])
    try:
        return {"value": decode(raw, **vec.get("options", {}))}
    except DecodeError as e:
        return {"err": e.code}


def _matches(got: Dict[str, Any], expect: Dict[str, Any]) -> bool:
    if "err" in expect:
        return got.get("err") == expect["err"]
    return "value" in got and values_equal(got["value"], from_tagged(expect))


def _show(got: Dict[str, Any]) -> str:
    if "err" in got:
        return got["err"]
    return format_value(got["value"])


# ── unittest integration ──────────────────────────────────────

class ConformanceTests(unittest.TestCase):
    """Dynamically generated: one test method per vector."""
    pass


def _make_test(vec: dict):
    def test_fn(self: unittest.TestCase) -> None:
        got = _run_vector(vec)
        self.assertTrue(_matches(got, vec["expect"]),
                        "{}: got {} expected {}".format(
                            vec["test_id"], _show(got), vec["expect"]))
    return test_fn


# Attach test methods at import time.
try:
    for _vec in _load_vectors():
        _tid = _vec["test_id"]
        _fn = _make_test(_vec)
        _fn.__name__ = "test_{}".format(_tid)
        _fn.__qualname__ = "ConformanceTests.test_{}".format(_tid)
        setattr(ConformanceTests, "test_{}".format(_tid), _fn)
except FileNotFoundError:
    pass


# ── Standalone CLI runner ─────────────────────────────────────

def main() -> None:
    global _VECTORS_DIR

    parser = argparse.ArgumentParser(description="bplist conformance runner")
    parser.add_argument("--vectors-dir", default=None,
                        help="Directory with conformance vector files")
    args, _remaining = parser.parse_known_args()

    if args.vectors_dir:
        _VECTORS_DIR = args.vectors_dir
        os.environ["BPLIST_VECTORS_DIR"] = args.vectors_dir

    vectors = _load_vectors()

    passed = 0
    failed = 0
    failures: List[Tuple[str, Dict[str, Any], dict]] = []

    for vec in vectors:
        tid = vec["test_id"]
        got = _run_vector(vec)
        if _matches(got, vec["expect"]):
            passed += 1
        else:
            failed += 1
            failures.append((tid, got, vec["expect"]))

    total = passed + failed
    print("CONFORMANCE: {}/{} PASS".format(passed, total))
    for tid, got, exp in failures:
        print("  FAIL {}: got={} expected={}".format(tid, _show(got), exp))

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
