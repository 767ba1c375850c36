"""
Tests: deliverable_overrides parsing and quantity rules.

Pure unit tests; no database access.
"""

import pytest

from fulfillment.core.exceptions import ValidationError
from fulfillment.services.overrides import (
    DeliverableOverride,
    coerce_item_quantity,
    final_quantity,
    parse_deliverable_overrides,
)


class TestParseOverrides:
    @pytest.mark.parametrize("metadata", [None, {}, {"deliverable_overrides": None}, {"colour": "red"}])
    def test_absent_overrides(self, metadata):
        assert parse_deliverable_overrides(metadata) == {}

    def test_string_and_int_keys(self):
        parsed = parse_deliverable_overrides({
            "deliverable_overrides": {"17": {"quantity": 5}, 18: {"quantity": 0}, " 19 ": {}},
        })
        assert parsed == {
            17: DeliverableOverride(template_id=17, quantity=5),
            18: DeliverableOverride(template_id=18, quantity=0),
            19: DeliverableOverride(template_id=19, quantity=None),
        }

    def test_integral_float_is_accepted(self):
        parsed = parse_deliverable_overrides({"deliverable_overrides": {"3": {"quantity": 2.0}}})
        assert parsed[3].quantity == 2

    @pytest.mark.parametrize("metadata", [
        "not a dict",
        ["list"],
        {"deliverable_overrides": "5"},
        {"deliverable_overrides": [{"quantity": 1}]},
        {"deliverable_overrides": {"abc": {"quantity": 1}}},
        {"deliverable_overrides": {"-4": {"quantity": 1}}},
        {"deliverable_overrides": {"7": 3}},
        {"deliverable_overrides": {"7": {"quantity": "3"}}},
        {"deliverable_overrides": {"7": {"quantity": True}}},
        {"deliverable_overrides": {"7": {"quantity": -1}}},
        {"deliverable_overrides": {"7": {"quantity": 1.5}}},
        {"deliverable_overrides": {"7": {"quantity": 1}, 7: {"quantity": 2}}},
    ])
    def test_malformed_overrides_raise(self, metadata):
        with pytest.raises(ValidationError) as exc_info:
            parse_deliverable_overrides(metadata, item_id=11)
        assert exc_info.value.code == "invalid_deliverable_overrides"
        assert exc_info.value.detail["commitment_item_id"] == 11


class TestQuantities:
    @pytest.mark.parametrize("value, expected", [
        (None, 1),
        (3, 3),
        (0, 0),
        (-5, 0),
        ("4", 4),
        ("x", 0),
    ])
    def test_coerce_item_quantity(self, value, expected):
        assert coerce_item_quantity(value) == expected

    def test_override_takes_precedence(self):
        assert final_quantity(1, DeliverableOverride(template_id=1, quantity=5)) == 5

    def test_zero_override_is_honoured(self):
        assert final_quantity(4, DeliverableOverride(template_id=1, quantity=0)) == 0

    def test_override_without_quantity_falls_back(self):
        assert final_quantity(3, DeliverableOverride(template_id=1)) == 3

    def test_no_override(self):
        assert final_quantity(2, None) == 2
