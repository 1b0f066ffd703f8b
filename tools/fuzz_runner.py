#!/usr/bin/env python3
# tools/fuzz_runner.py
#
# Round-trip and mutation fuzzing for the bplist codec.
#
# Two fuzz categories:
#   A) random VALID value trees -> encode -> decode -> values_equal
#   B) valid buffers with random byte flips, truncations and trailer
#      forgeries -> decode must either succeed or raise a DecodeError;
#      anything else (IndexError, MemoryError, RecursionError...) is a bug.
#
# Any failure prints a minimal repro payload and exits non-zero.

import os, sys, random
from typing import Any

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "implementations", "python"))

from bplist import (
    UID, Bag, DecodeError, LENIENT, Map, Real, Timestamp,
    decode, encode, format_value, values_equal,
)

SEED = int(os.environ.get("BPLIST_SEED", "4242"))
ROUNDS = int(os.environ.get("BPLIST_FUZZ_ROUNDS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("BPLIST_GEN_MAX_DEPTH", "5"))
FUZZ_BUDGET = 1 << 20

random.seed(SEED)

def fail(label: str, ctx: Any) -> None:
    print("FAIL:", label)
    print("CTX:", repr(ctx)[:4000])
    raise SystemExit(1)

# --- generators ---

def rand_text(nmax: int) -> str:
    n = random.randint(0, nmax)
    out = []
    for _ in range(n):
        r = random.random()
        if r < 0.75:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.95:
            out.append(chr(random.randint(0xA0, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_int() -> int:
    bits = random.choice([7, 8, 15, 16, 31, 32, 63, 64, 100, 127])
    return random.randint(-(1 << bits), (1 << bits) - 1)

def rand_scalar() -> Any:
    r = random.randint(0, 9)
    if r == 0:
        return None
    if r == 1:
        return random.random() < 0.5
    if r == 2:
        return rand_int()
    if r == 3:
        return Real(random.uniform(-1e6, 1e6), random.choice([4, 8])) if random.random() < 0.5 \
            else random.uniform(-1e300, 1e300)
    if r == 4:
        return Timestamp(random.uniform(-1e9, 1e9))
    if r == 5:
        return bytes(random.getrandbits(8) for _ in range(random.randint(0, 40)))
    if r == 6:
        return UID(bytes(random.getrandbits(8) for _ in range(random.randint(1, 16))))
    return rand_text(30)

def rand_tree(depth: int = 0) -> Any:
    if depth > MAX_GEN_DEPTH or random.random() < 0.4:
        return rand_scalar()
    r = random.random()
    n = random.randint(0, 20 if random.random() < 0.9 else 300)
    if r < 0.4:
        return [rand_tree(depth + 1) for _ in range(n)]
    if r < 0.55:
        return Bag(rand_tree(depth + 1) for _ in range(n))
    return Map((rand_tree(depth + 1), rand_tree(depth + 1)) for _ in range(n))

def with_sharing(v: Any) -> Any:
    # Splice the same subtree in twice to exercise diamond references.
    if isinstance(v, list) and v:
        return v + [v[0]]
    return [v, v]

# --- mutators ---

def mutate(buf: bytes) -> bytes:
    b = bytearray(buf)
    op = random.randint(0, 3)
    if op == 0:
        for _ in range(random.randint(1, 4)):
            i = random.randrange(len(b))
            b[i] = random.getrandbits(8)
    elif op == 1:
        b = b[:random.randrange(len(b))]
    elif op == 2:
        # Forge a trailer field.
        i = len(b) - 32 + random.choice([6, 7, 15, 23, 31])
        b[i] = random.choice([0x00, 0x01, 0x7F, 0xFF])
    else:
        # Forge a tag into an extended length.
        i = random.randrange(8, max(9, len(b) - 32))
        b[i] = (b[i] & 0xF0) | 0x0F
    return bytes(b)

# --- categories ---

def category_round_trip() -> None:
    for r in range(ROUNDS):
        v = rand_tree()
        if random.random() < 0.2:
            v = with_sharing(v)
        buf = encode(v)
        got = decode(buf)
        if not values_equal(got, v):
            fail("round-trip mismatch (round {})".format(r),
                 {"value": format_value(v), "got": format_value(got)})

def category_mutation() -> None:
    for r in range(ROUNDS):
        buf = mutate(encode(rand_tree()))
        for strictness in ("strict", LENIENT):
            try:
                decode(buf, strictness=strictness, max_bytes=FUZZ_BUDGET)
            except DecodeError:
                pass
            except Exception as e:  # noqa: BLE001
                fail("decode raised {} (round {})".format(type(e).__name__, r),
                     {"hex": buf.hex(), "error": str(e)})

def main() -> None:
    print("seed={} rounds={}".format(SEED, ROUNDS))
    category_round_trip()
    print("A) round-trip: OK")
    category_mutation()
    print("B) mutation: OK")

if __name__ == "__main__":
    main()
