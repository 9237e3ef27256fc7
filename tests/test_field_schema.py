"""
Unit tests for result field schema parsing and results validation
"""

import json
import pytest

from lis_workflow.core.exceptions import ValidationException
from lis_workflow.services.field_schema import parse_field_schema, validate_results
from tests.conftest import GLUCOSE_SCHEMA


@pytest.fixture
def schema():
    return parse_field_schema(GLUCOSE_SCHEMA)


class TestParseFieldSchema:
    """Tolerant schema normalization"""
    
    def test_parse_object(self, schema):
        assert [field.key for field in schema.all_fields()] == ["glucose", "flag", "observations"]
        glucose = schema.field_map()["glucose"]
        assert glucose.unit == "mg/dL"
        assert glucose.reference_range == "70-100"
    
    def test_parse_json_string(self):
        parsed = parse_field_schema(json.dumps(GLUCOSE_SCHEMA))
        assert parsed is not None
        assert parsed.field_map()["flag"].options == ["normal", "alto", "bajo"]
    
    @pytest.mark.parametrize("value", [None, "", "not json", "[]", {"sections": "x"}, {"other": []}])
    def test_unusable_schema(self, value):
        assert parse_field_schema(value) is None
    
    def test_malformed_entries_are_dropped(self):
        parsed = parse_field_schema({
            "sections": [
                "junk",
                {"id": "a", "fields": []},
                {
                    "id": "b",
                    "label": "B",
                    "fields": [
                        {"key": "ok", "label": "Ok", "type": "string"},
                        {"key": "bad", "label": "Bad", "type": "date"},
                        {"label": "No key", "type": "string"},
                    ],
                },
            ]
        })
        assert [section.id for section in parsed.sections] == ["b"]
        assert list(parsed.field_map()) == ["ok"]


class TestValidateResults:
    """Results payload coercion against a schema"""
    
    def test_numeric_strings_are_coerced(self, schema):
        assert validate_results({"glucose": "92"}, schema) == {"glucose": 92}
        assert validate_results({"glucose": " 5.5 "}, schema) == {"glucose": 5.5}
    
    def test_numbers_pass_through(self, schema):
        assert validate_results({"glucose": 101.25}, schema) == {"glucose": 101.25}
    
    def test_non_numeric_value_is_rejected(self, schema):
        with pytest.raises(ValidationException) as exc_info:
            validate_results({"glucose": "alto"}, schema)
        assert exc_info.value.message == "El campo Glucosa debe ser numérico"
    
    def test_non_finite_number_is_rejected(self, schema):
        with pytest.raises(ValidationException):
            validate_results({"glucose": float("inf")}, schema)
    
    def test_empty_numeric_is_omitted(self, schema):
        assert validate_results({"glucose": "", "flag": "normal"}, schema) == {"flag": "normal"}
    
    def test_enum_option(self, schema):
        assert validate_results({"flag": "alto"}, schema) == {"flag": "alto"}
        assert validate_results({"flag": ""}, schema) == {"flag": ""}
        with pytest.raises(ValidationException):
            validate_results({"flag": "critico"}, schema)
    
    def test_string_field_accepts_numbers(self, schema):
        assert validate_results({"observations": 3}, schema) == {"observations": "3"}
    
    def test_none_values_are_omitted(self, schema):
        assert validate_results({"observations": None}, schema) == {}
    
    def test_unknown_key_is_rejected(self, schema):
        with pytest.raises(ValidationException) as exc_info:
            validate_results({"cholesterol": 180}, schema)
        assert "cholesterol" in exc_info.value.message
    
    def test_non_mapping_is_rejected(self, schema):
        with pytest.raises(ValidationException):
            validate_results(["glucose", 90], schema)
    
    def test_without_schema_only_shapes_are_checked(self):
        assert validate_results({"anything": "x", "n": 2}, None) == {"anything": "x", "n": 2}
        with pytest.raises(ValidationException):
            validate_results({"nested": {"a": 1}}, None)
