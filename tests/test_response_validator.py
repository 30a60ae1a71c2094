"""Tests for ResponseValidator: fence stripping, parsing and schema checks."""

import copy
import json

import pytest

from ingredient_lens.ai import ParseError, ResponseValidator, ValidationError, strip_fences
from tests.fakes import TOMATO_PAYLOAD, TOMATO_TEXT


@pytest.fixture
def validator():
    return ResponseValidator(log_dir=None)


FULL_PAYLOAD = {
    "ingredients": [
        {"name": "鸡蛋", "info": "优质蛋白来源", "nutrition": "蛋白质 13g", "caloriesPer100g": 144},
        {"name": "菠菜", "info": "富含铁", "caloriesPer100g": 23},
        {"name": "水", "info": "无热量", "caloriesPer100g": 0},
    ],
    "recipes": [
        {
            "id": "r2",
            "name": "菠菜炒蛋",
            "description": "家常快手菜",
            "difficulty": "中等",
            "prepTime": "15分钟",
            "allIngredients": ["鸡蛋", "菠菜", "盐"],
            "instructions": ["焯水", "炒蛋", "混合翻炒"],
        },
        {
            "id": "r1",
            "name": "菠菜蛋花汤",
            "difficulty": "简单",
            "prepTime": "10分钟",
            "allIngredients": [],
            "instructions": [],
        },
    ],
}


class TestStripFences:

    @pytest.mark.parametrize("fence", ["```json", "```JSON", "```Json", "```jSoN", "```"])
    def test_fenced_equals_unfenced(self, fence):
        fenced = f"{fence}\n{TOMATO_TEXT}\n```"
        assert strip_fences(fenced) == strip_fences(TOMATO_TEXT) == TOMATO_TEXT

    def test_surrounding_whitespace_trimmed(self):
        assert strip_fences("  \n```json\n{}\n```\n\n") == "{}"

    def test_none_is_empty(self):
        assert strip_fences(None) == ""


class TestValidate:

    def test_returns_structure_unchanged(self, validator):
        result = validator.validate(TOMATO_TEXT)
        assert result.to_dict() == TOMATO_PAYLOAD

    def test_optional_fields_and_order_preserved(self, validator):
        result = validator.validate(json.dumps(FULL_PAYLOAD, ensure_ascii=False))

        assert result.to_dict() == FULL_PAYLOAD
        assert [item.name for item in result.ingredients] == ["鸡蛋", "菠菜", "水"]
        assert [recipe.id for recipe in result.recipes] == ["r2", "r1"]
        assert result.ingredients[1].nutrition is None
        assert result.recipes[1].description is None
        assert result.ingredients[0].calories_per_100g == 144

    def test_fenced_payload(self, validator):
        result = validator.validate(f"```JSON\n{TOMATO_TEXT}\n```")
        assert result.to_dict() == TOMATO_PAYLOAD

    def test_duplicates_kept(self, validator):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        payload["ingredients"].append(dict(payload["ingredients"][0]))
        result = validator.validate(json.dumps(payload))
        assert len(result.ingredients) == 2

    def test_missing_recipes_defaults_to_empty(self, validator):
        result = validator.validate(json.dumps({"ingredients": TOMATO_PAYLOAD["ingredients"]}))
        assert result.recipes == []

    def test_explicit_null_optional_fields_read_as_absent(self, validator):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        payload["ingredients"][0]["nutrition"] = None
        payload["recipes"][0]["description"] = None

        result = validator.validate(json.dumps(payload))

        assert result.ingredients[0].nutrition is None
        assert result.recipes[0].description is None
        assert result.to_dict() == TOMATO_PAYLOAD
        assert "nutrition" not in result.to_dict()["ingredients"][0]

    @pytest.mark.parametrize("text", [
        '{"ingredients": [], "recipes": []}',
        '```json\n{"ingredients":[],"recipes":[]}\n```',
        '{"recipes": []}',
        '{"ingredients": null}',
        '{"ingredients": "番茄"}',
        '[]',
    ])
    def test_no_ingredients_is_validation_error(self, validator, text):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(text)
        assert exc_info.value.no_ingredients

    @pytest.mark.parametrize("text", [
        "not json at all",
        "抱歉，我无法识别这张图片。",
        "{'ingredients': []}",
        '{"ingredients": [',
        "```json\n{broken\n```",
    ])
    def test_non_json_is_parse_error(self, validator, text):
        with pytest.raises(ParseError) as exc_info:
            validator.validate(text)
        assert not exc_info.value.empty
        assert "unexpected token" in str(exc_info.value)

    @pytest.mark.parametrize("text", ["", "   ", "```json\n```", None])
    def test_empty_payload_is_distinct_parse_error(self, validator, text):
        with pytest.raises(ParseError) as exc_info:
            validator.validate(text)
        assert exc_info.value.empty
        assert "empty payload" in str(exc_info.value)

    @pytest.mark.parametrize("field", ["name", "info", "caloriesPer100g"])
    def test_missing_ingredient_field(self, validator, field):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        del payload["ingredients"][0][field]
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(json.dumps(payload))
        assert field in str(exc_info.value)
        assert not exc_info.value.no_ingredients

    @pytest.mark.parametrize("field", ["id", "name", "difficulty", "prepTime", "allIngredients", "instructions"])
    def test_missing_recipe_field(self, validator, field):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        del payload["recipes"][0][field]
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(json.dumps(payload))
        assert field in str(exc_info.value)

    @pytest.mark.parametrize("calories", [-1, 1.5, "18", True])
    def test_calories_must_be_non_negative_integer(self, validator, calories):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        payload["ingredients"][0]["caloriesPer100g"] = calories
        with pytest.raises(ValidationError):
            validator.validate(json.dumps(payload))

    def test_instructions_must_be_strings(self, validator):
        payload = copy.deepcopy(TOMATO_PAYLOAD)
        payload["recipes"][0]["instructions"] = ["切块", 2]
        with pytest.raises(ValidationError):
            validator.validate(json.dumps(payload))
