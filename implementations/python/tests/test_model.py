"""Tests for the value model: equality, lookups, conversions, printing."""

from __future__ import annotations

import copy
import datetime
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bplist import UID, Bag, Map, Real, Timestamp, format_value, values_equal


class TestValuesEqual(unittest.TestCase):
    def test_bool_is_not_int(self):
        self.assertFalse(values_equal(True, 1))
        self.assertFalse(values_equal(0, False))
        self.assertFalse(values_equal([True], [1]))
        self.assertTrue(values_equal(False, False))

    def test_none(self):
        self.assertTrue(values_equal(None, None))
        self.assertFalse(values_equal(None, 0))
        self.assertFalse(values_equal("", None))

    def test_float_is_eight_byte_real(self):
        self.assertTrue(values_equal(2.0, Real(2.0, 8)))
        self.assertFalse(values_equal(2.0, Real(2.0, 4)))
        self.assertFalse(values_equal(2.0, 2))

    def test_text_and_data_differ(self):
        self.assertFalse(values_equal("ab", b"ab"))
        self.assertTrue(values_equal(bytearray(b"ab"), b"ab"))

    def test_list_order_matters(self):
        self.assertFalse(values_equal([1, 2], [2, 1]))
        self.assertTrue(values_equal((1, 2), [1, 2]))

    def test_bag_multiset(self):
        self.assertTrue(values_equal(Bag([1, 1, 2]), Bag([2, 1, 1])))
        self.assertFalse(values_equal(Bag([1, 1, 2]), Bag([1, 2, 2])))
        self.assertTrue(values_equal(Bag([[1], [2]]), Bag([[2], [1]])))
        self.assertTrue(values_equal(Bag([3]), {3}))

    def test_map_order_matters(self):
        a = Map([("x", 1), ("y", 2)])
        self.assertTrue(values_equal(a, {"x": 1, "y": 2}))
        self.assertFalse(values_equal(a, {"y": 2, "x": 1}))

    def test_uid_and_timestamp(self):
        self.assertTrue(values_equal(UID(5), UID(b"\x05")))
        self.assertFalse(values_equal(UID(5), 5))
        self.assertTrue(values_equal(Timestamp(1.0), Timestamp(1.0)))
        self.assertFalse(values_equal(Timestamp(1.0), Real(1.0)))

    def test_deep_tree_no_recursion_error(self):
        a, b = None, None
        for _ in range(5000):
            a, b = [a], [b]
        self.assertTrue(values_equal(a, b))

    def test_deep_bags_no_recursion_error(self):
        a, b = Bag([0]), Bag([0])
        for _ in range(5000):
            a, b = Bag([a, 1]), Bag([2, b])
        self.assertFalse(values_equal(a, b))
        a, b = Bag([0]), Bag([0])
        for _ in range(5000):
            a, b = Bag([a, 1]), Bag([1, b])
        self.assertTrue(values_equal(a, b))

    def test_bag_diamond_is_linear(self):
        # Each level holds the one below twice: 2**1000 paths, 1001 objects.
        a, b = "leaf", "leaf"
        for _ in range(1000):
            a, b = Bag([a, a]), Bag([b, b])
        self.assertTrue(values_equal(a, b))
        self.assertFalse(values_equal(a, Bag([b, "leaf"])))

    def test_nested_bags_match_as_multisets(self):
        a = Bag([Bag([1, Bag([2, 3])]), Bag([Bag([3, 2]), 1]), 4])
        b = Bag([4, Bag([Bag([2, 3]), 1]), Bag([1, Bag([3, 2])])])
        self.assertTrue(values_equal(a, b))
        self.assertFalse(values_equal(a, Bag([4, Bag([Bag([2, 3]), 1]), Bag([1, Bag([3, 3])])])))

    def test_nan_equals_nan(self):
        self.assertTrue(values_equal([float("nan")], [Real(float("nan"))]))

    def test_self_containing_list_raises(self):
        a = [1]
        a.append(a)
        with self.assertRaises(ValueError):
            values_equal(a, [1, [1]])

    def test_operator_eq_delegates(self):
        self.assertEqual(Map([("k", [1])]), Map([("k", [1])]))
        self.assertNotEqual(Real(1.0, 4), Real(1.0, 8))


class TestMap(unittest.TestCase):
    def setUp(self):
        self.m = Map([("a", 1), (2, "two"), ("b", [3])])

    def test_access(self):
        self.assertEqual(len(self.m), 3)
        self.assertEqual(self.m["a"], 1)
        self.assertEqual(self.m[2], "two")
        self.assertIn("b", self.m)
        self.assertNotIn("c", self.m)
        self.assertIsNone(self.m.get("c"))
        self.assertEqual(self.m.get("c", 0), 0)
        self.assertEqual(list(self.m), ["a", 2, "b"])
        self.assertEqual(self.m.values(), [1, "two", [3]])

    def test_missing_key(self):
        with self.assertRaises(KeyError):
            self.m["missing"]

    def test_bool_key_does_not_match_int(self):
        m = Map([(1, "int")])
        self.assertNotIn(True, m)

    def test_from_dict(self):
        self.assertEqual(Map({"k": "v"}).items(), [("k", "v")])

    def test_deepcopy_keeps_sharing(self):
        shared = ["s"]
        m = Map([("x", shared), ("y", shared)])
        c = copy.deepcopy(m)
        self.assertIs(c["x"], c["y"])
        self.assertIsNot(c["x"], shared)


class TestScalars(unittest.TestCase):
    def test_real32_rounds_to_float32(self):
        r = Real(0.1, 4)
        self.assertNotEqual(r.value, 0.1)
        self.assertAlmostEqual(r.value, 0.1, places=6)
        self.assertEqual(Real(0.5, 4).value, 0.5)

    def test_real32_out_of_range(self):
        with self.assertRaises(ValueError):
            Real(1e300, 4)
        self.assertEqual(Real(float("inf"), 4).value, float("inf"))

    def test_real_width_check(self):
        with self.assertRaises(ValueError):
            Real(1.0, 2)

    def test_timestamp_epoch(self):
        ts = Timestamp(0.0)
        self.assertEqual(ts.to_datetime(),
                         datetime.datetime(2001, 1, 1, tzinfo=datetime.timezone.utc))
        self.assertEqual(ts.to_unix(), 978307200.0)
        self.assertEqual(Timestamp.from_unix(978307260.0), Timestamp(60.0))

    def test_timestamp_naive_is_utc(self):
        ts = Timestamp.from_datetime(datetime.datetime(2001, 1, 2))
        self.assertEqual(ts.seconds, 86400.0)

    def test_timestamp_before_epoch(self):
        ts = Timestamp.from_datetime(
            datetime.datetime(2000, 12, 31, tzinfo=datetime.timezone.utc))
        self.assertEqual(ts.seconds, -86400.0)

    def test_uid(self):
        self.assertEqual(int(UID(b"\x01\x00")), 256)
        self.assertEqual(UID(0).data, b"\x00")
        self.assertEqual(UID(300).data, b"\x01\x2c")
        with self.assertRaises(ValueError):
            UID(b"")
        with self.assertRaises(ValueError):
            UID(bytes(17))
        with self.assertRaises(ValueError):
            UID(-1)

    def test_hashable_scalars(self):
        self.assertEqual(len({UID(1), UID(b"\x01"), Timestamp(2.0), Timestamp(2.0)}), 2)

    def test_real_hashes_like_equal_float(self):
        self.assertEqual(hash(Real(1.5)), hash(1.5))
        self.assertEqual(len({Real(1.5), 1.5}), 1)
        self.assertEqual(len({Real(0.0), Real(-0.0)}), 1)
        self.assertEqual(len({Real(1.5, 4), Real(1.5, 8)}), 2)
        self.assertEqual({1.5: "x"}[Real(1.5)], "x")


class TestFormatValue(unittest.TestCase):
    def test_scalars(self):
        self.assertEqual(format_value(None), "null")
        self.assertEqual(format_value(True), "true")
        self.assertEqual(format_value(-3), "-3")
        self.assertEqual(format_value('say "hi"'), '"say \\"hi\\""')
        self.assertEqual(format_value(b"\x01\xff"), "data <01ff>")
        self.assertEqual(format_value(Real(0.5, 4)), "real32 0.5")
        self.assertEqual(format_value(UID(7)), "uid 07")
        self.assertEqual(format_value(Timestamp(0.0)), "date 2001-01-01T00:00:00+00:00")

    def test_nested(self):
        text = format_value(Map([("k", [1, Bag([True])])]))
        self.assertEqual(text.splitlines(), [
            "map (1)",
            '  "k" = list (2)',
            "    1",
            "    bag (1)",
            "      true",
        ])

    def test_deep_tree_no_recursion_error(self):
        v = 1
        for _ in range(1500):
            v = [v]
        lines = format_value(v).splitlines()
        self.assertEqual(len(lines), 1501)
        self.assertEqual(lines[0], "list (1)")
        self.assertEqual(lines[-1], "  " * 1500 + "1")


if __name__ == "__main__":
    unittest.main()
