import unittest
from types import SimpleNamespace

from taxintake.services.calculations import (
    apply_calculations,
    evaluate_expression,
    recompute,
    referenced_names,
)


def field(key, calculation=None):
    return SimpleNamespace(field_key=key, is_calculated=calculation is not None, calculation=calculation)


class EvaluateExpressionTests(unittest.TestCase):
    def test_arithmetic_precedence_and_unary(self):
        ctx = {"a": 10.0, "b": 4.0}
        self.assertEqual(evaluate_expression("a + b * 2", ctx).value, 18)
        self.assertEqual(evaluate_expression("(a + b) * 2", ctx).value, 28)
        self.assertEqual(evaluate_expression("-a + b", ctx).value, -6)
        self.assertEqual(evaluate_expression("a / b", ctx).value, 2.5)
        self.assertEqual(evaluate_expression("a - -b", ctx).value, 14)

    def test_min_max_are_case_insensitive(self):
        ctx = {"line_9": 100.0, "line_10": 250.0}
        self.assertEqual(evaluate_expression("max(0, line_9 - line_10)", ctx).value, 0)
        self.assertEqual(evaluate_expression("MIN(line_9, line_10, 50)", ctx).value, 50)
        self.assertEqual(evaluate_expression("Max(line_9)", ctx).value, 100)

    def test_unknown_identifier_is_zero(self):
        result = evaluate_expression("a + missing", {"a": 3.0})
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 3)

    def test_failures_degrade_to_zero_with_reason(self):
        for expression in ["foo +", "a * (b", "a $ b", "sqrt(4)", "1 / 0", "max()", "", "a b"]:
            result = evaluate_expression(expression, {"a": 1.0, "b": 2.0})
            self.assertEqual(result.value, 0, expression)
            self.assertFalse(result.ok, expression)
            self.assertTrue(result.error)

    def test_deep_nesting_degrades_to_zero(self):
        self.assertEqual(evaluate_expression("(" * 60 + "a" + ")" * 60, {"a": 2.0}).value, 2)
        for expression in ["(" * 249 + "1" + ")" * 249, "-" * 499 + "1", "max(" * 99 + "1" + ")" * 99]:
            result = evaluate_expression(expression, {})
            self.assertEqual(result.value, 0)
            self.assertFalse(result.ok)
        self.assertEqual(referenced_names("(" * 240 + "a" + ")" * 240), set())

    def test_referenced_names(self):
        self.assertEqual(referenced_names("max(0, a - b) + c"), {"a", "b", "c"})
        self.assertEqual(referenced_names("a +"), set())


class RecomputeTests(unittest.TestCase):
    def test_subtraction_scenario(self):
        fields = [field("a"), field("b"), field("c", "a - b")]
        self.assertEqual(recompute(fields, {"a": 10, "b": 5}), {"c": 5})
        self.assertEqual(recompute(fields, {"a": 20, "b": 5, "c": 5}), {"c": 15})

    def test_deeply_nested_expression_yields_zero(self):
        fields = [field("a"), field("c", "(" * 240 + "a" + ")" * 240)]
        self.assertEqual(recompute(fields, {"a": 1}), {"c": 0})

    def test_malformed_expression_yields_zero(self):
        fields = [field("foo"), field("c", "foo +")]
        self.assertEqual(recompute(fields, {"foo": 7}), {"c": 0})

    def test_chained_calculations_resolve_out_of_order(self):
        fields = [
            field("total", "subtotal + fee"),
            field("subtotal", "x + y"),
            field("fee", "2"),
        ]
        self.assertEqual(recompute(fields, {"x": "1,000", "y": 250}), {"total": 1252, "subtotal": 1250, "fee": 2})

    def test_cycles_stop_without_error(self):
        fields = [field("p", "q + 1"), field("q", "p + 1")]
        result = recompute(fields, {})
        self.assertEqual(set(result), {"p", "q"})

    def test_numeric_answers_are_coerced(self):
        fields = [field("sum", "items + flag + amount")]
        result = recompute(fields, {"items": ["1", 2], "flag": True, "amount": {"value": "$3.50"}})
        self.assertEqual(result, {"sum": 7.5})

    def test_fields_without_expression_are_skipped(self):
        fields = [field("a"), field("blank", "   ")]
        self.assertEqual(recompute(fields, {"a": 1}), {})

    def test_apply_calculations_overrides_user_values(self):
        fields = [field("a"), field("b"), field("c", "a + b")]
        merged = apply_calculations(fields, {"a": 1, "b": 2, "c": 999, "note": "x"})
        self.assertEqual(merged, {"a": 1, "b": 2, "c": 3, "note": "x"})
