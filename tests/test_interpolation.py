"""Tests for placeholder interpolation and conditions."""

from __future__ import annotations

import pytest

from abilities.core.interpolation import evaluate_condition, interpolate, interpolate_mapping
from abilities.definitions.conditions import parse_condition


class TestInterpolate:
    def test_inputs(self):
        assert interpolate('echo "Hello {{inputs.name}}"', {"name": "World"}) == 'echo "Hello World"'

    def test_whitespace_inside_braces(self):
        assert interpolate("{{ inputs.name }}", {"name": "x"}) == "x"

    def test_step_output_is_stripped(self):
        text = interpolate("v={{steps.version.output}}", {}, {"version": "1.2.3\n"})
        assert text == "v=1.2.3"

    def test_unresolved_left_as_written(self):
        text = "{{inputs.missing}} and {{steps.nope.output}}"
        assert interpolate(text, {}, {}) == text

    def test_value_rendering(self):
        inputs = {"flag": True, "off": False, "count": 3, "tags": ["a", "b"], "none": None}
        assert interpolate("{{inputs.flag}}/{{inputs.off}}", inputs) == "true/false"
        assert interpolate("{{inputs.count}}", inputs) == "3"
        assert interpolate("{{inputs.tags}}", inputs) == '["a", "b"]'
        assert interpolate("[{{inputs.none}}]", inputs) == "[]"

    def test_other_braces_untouched(self):
        assert interpolate("{{ env.HOME }} ${X}", {"HOME": "nope"}) == "{{ env.HOME }} ${X}"


class TestInterpolateMapping:
    def test_nested(self):
        result = interpolate_mapping(
            {"target": "{{inputs.env}}-cluster", "opts": {"list": ["{{steps.a.output}}"]}},
            {"env": "prod"},
            {"a": " out "},
        )
        assert result == {"target": "prod-cluster", "opts": {"list": ["out"]}}

    def test_single_placeholder_keeps_type(self):
        result = interpolate_mapping({"replicas": "{{inputs.replicas}}", "n": 5}, {"replicas": 3})
        assert result == {"replicas": 3, "n": 5}


class TestConditions:
    @pytest.mark.parametrize("expression", [
        "inputs.deploy",
        "!inputs.deploy",
        "steps.build.output == 'ok'",
        "steps.build.status != \"failed\"",
        "inputs.count == 3",
    ])
    def test_parse_valid(self, expression):
        parse_condition(expression)

    @pytest.mark.parametrize("expression", [
        "",
        "inputs.x > 3",
        "steps.build.status != failed",
        "env.HOME",
    ])
    def test_parse_invalid(self, expression):
        with pytest.raises(ValueError):
            parse_condition(expression)

    def test_truthy_and_negation(self):
        assert evaluate_condition("inputs.deploy", {"deploy": True})
        assert not evaluate_condition("inputs.deploy", {"deploy": False})
        assert evaluate_condition("!inputs.deploy", {})

    def test_string_comparison(self):
        outputs = {"check": "ok\n"}
        assert evaluate_condition("steps.check.output == 'ok'", {}, outputs)
        assert not evaluate_condition("steps.check.output != 'ok'", {}, outputs)

    def test_status_comparison(self):
        statuses = {"build": "failed"}
        assert evaluate_condition("steps.build.status == 'failed'", {}, {}, statuses)
        assert evaluate_condition("steps.other.status != 'failed'", {}, {}, statuses)

    def test_native_literals(self):
        assert evaluate_condition("inputs.count == 3", {"count": 3})
        assert evaluate_condition("inputs.enabled == true", {"enabled": True})
        assert evaluate_condition("inputs.missing == null", {})

    def test_boolean_compared_to_string_literal(self):
        assert evaluate_condition("inputs.enabled == 'true'", {"enabled": True})

    def test_operator_inside_quoted_literal(self):
        condition = parse_condition('inputs.x != "a==b"')
        assert condition.operator == "!="
        assert condition.literal == "a==b"

        assert evaluate_condition('inputs.x != "a==b"', {"x": "other"})
        assert not evaluate_condition("inputs.x == 'p!=q'", {"x": "p"})
        assert evaluate_condition("inputs.x == 'p!=q'", {"x": "p!=q"})
