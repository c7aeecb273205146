# tests/test_validator.py
from gateway.validator import ResponseValidator

SUBNICHE_CONTRACT = {
    "type": "ARRAY",
    "minItems": 1,
    "items": {
        "type": "OBJECT",
        "properties": {
            "subniche_name": {"type": "STRING"},
            "scores": {
                "type": "OBJECT",
                "properties": {
                    "Potencial": {"type": "NUMBER"},
                    "Concorrência": {"type": "NUMBER"},
                    "Originalidade": {"type": "NUMBER"},
                },
                "required": ["Potencial", "Concorrência", "Originalidade"],
            },
        },
        "required": ["subniche_name", "scores"],
    },
}

validator = ResponseValidator()


def test_no_contract_wraps_text():
    data, ok = validator.validate("plain words, not JSON", None)
    assert ok
    assert data == {"text": "plain words, not JSON"}


def test_contract_parses_json():
    data, ok = validator.validate(' {"title": "x"}\n', {"type": "object"})
    assert ok
    assert data == {"title": "x"}


def test_prose_around_json_is_rejected():
    data, ok = validator.validate('Sure! {"title": "x"}', {"type": "object"})
    assert not ok
    assert data is None


def test_truncated_json_is_rejected():
    _, ok = validator.validate('[{"subniche_name": "a", "scores": {"Potencial": 1', SUBNICHE_CONTRACT)
    assert not ok


def test_scored_records_pass():
    raw = (
        '[{"subniche_name": "retro gaming", '
        '"scores": {"Potencial": 8, "Concorrência": 4.5, "Originalidade": 7}}]'
    )
    data, ok = validator.validate(raw, SUBNICHE_CONTRACT)
    assert ok
    assert data[0]["scores"]["Concorrência"] == 4.5


def test_missing_numeric_subfield_fails():
    raw = '[{"subniche_name": "a", "scores": {"Potencial": 8, "Concorrência": 4}}]'
    _, ok = validator.validate(raw, SUBNICHE_CONTRACT)
    assert not ok


def test_string_where_number_expected_fails():
    raw = '[{"subniche_name": "a", "scores": {"Potencial": "8", "Concorrência": 4, "Originalidade": 1}}]'
    _, ok = validator.validate(raw, SUBNICHE_CONTRACT)
    assert not ok


def test_bool_is_not_a_number():
    errors = validator.check_shape(True, {"type": "number"})
    assert errors and errors[0][2] == "expected number"


def test_empty_array_violates_min_items():
    _, ok = validator.validate("[]", SUBNICHE_CONTRACT)
    assert not ok


def test_check_shape_reports_path_of_offending_element():
    errors = validator.check_shape(
        [{"subniche_name": "a", "scores": {"Potencial": 1, "Concorrência": 2, "Originalidade": None}}],
        SUBNICHE_CONTRACT,
    )
    assert errors[0][0] == "$[0].scores.Originalidade"
    assert errors[0][1] is None


def test_optional_property_may_be_absent():
    contract = {"type": "object", "properties": {"tags": {"type": "array"}}}
    data, ok = validator.validate("{}", contract)
    assert ok
    assert data == {}


def test_non_integer_min_items_is_ignored():
    contract = {"type": "array", "minItems": "two"}
    data, ok = validator.validate("[]", contract)
    assert ok
    assert data == []
