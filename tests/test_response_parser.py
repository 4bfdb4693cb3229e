import json

import pytest

from conftest import VALID_RESPONSE
from errors import ResponseError, ResponseFailure
from models import Direction, VisualIndicator
from response_parser import find_json_region, parse_analysis


def _with(**changes):
    data = json.loads(json.dumps(VALID_RESPONSE))
    for key, value in changes.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    return json.dumps(data)


def test_find_region_skips_prose():
    assert find_json_region('The answer is {"a": 1} and more') == '{"a": 1}'


def test_find_region_handles_nesting():
    text = 'x {"a": {"b": {"c": 2}}, "d": 3} y {"e": 4}'
    assert find_json_region(text) == '{"a": {"b": {"c": 2}}, "d": 3}'


def test_find_region_ignores_braces_in_strings():
    text = 'pre {"a": "close } here", "b": "open { there"} post }'
    assert find_json_region(text) == '{"a": "close } here", "b": "open { there"}'


def test_find_region_handles_escaped_quotes():
    text = r'{"a": "say \"}\" now", "b": 1} tail'
    assert find_json_region(text) == r'{"a": "say \"}\" now", "b": 1}'


def test_find_region_resumes_after_unbalanced_start():
    assert find_json_region('{ never closed "x" {"ok": true}') == '{"ok": true}'


def test_find_region_not_found():
    assert find_json_region("no json here") is None
    assert find_json_region("{ unbalanced") is None


def test_parse_valid_response(valid_text):
    result = parse_analysis(valid_text)
    assert result.direction is Direction.BUY
    assert result.visual_indicator is VisualIndicator.UP_ARROW
    assert result.probability == "72%"
    assert result.fibonacci.current_level == "61.8%"
    assert result.elliott.next_move == "Continuation up"


def test_parse_handles_markdown_fence():
    text = "```json\n" + json.dumps(VALID_RESPONSE) + "\n```"
    assert parse_analysis(text).direction is Direction.BUY


def test_direction_and_indicator_are_independent():
    result = parse_analysis(_with(direcao="VENDA", indicador_visual="SETA_VERDE_CIMA"))
    assert result.direction is Direction.SELL
    assert result.visual_indicator is VisualIndicator.UP_ARROW


def test_missing_direction_is_schema_error():
    with pytest.raises(ResponseError) as exc:
        parse_analysis(_with(direcao=None))
    assert exc.value.reason is ResponseFailure.SCHEMA


@pytest.mark.parametrize("field, value", [
    ("direcao", "BUY"),
    ("indicador_visual", "UP"),
    ("probabilidade", ""),
    ("analise_resumida", "   "),
    ("probabilidade", 72),
])
def test_invalid_fields_are_rejected(field, value):
    with pytest.raises(ResponseError) as exc:
        parse_analysis(_with(**{field: value}))
    assert exc.value.reason is ResponseFailure.SCHEMA


@pytest.mark.parametrize("text, reason", [
    ("", ResponseFailure.EMPTY),
    (None, ResponseFailure.EMPTY),
    ("   \n", ResponseFailure.EMPTY),
    ("I cannot analyze this image.", ResponseFailure.NO_JSON),
    ("{'direcao': 'COMPRA'}", ResponseFailure.MALFORMED),
    ("[1, 2, 3] {1: 2}", ResponseFailure.MALFORMED),
])
def test_unusable_text(text, reason):
    with pytest.raises(ResponseError) as exc:
        parse_analysis(text)
    assert exc.value.reason is reason


def test_partial_fibonacci_block_is_dropped():
    result = parse_analysis(_with(fibonacci={"nivel_atual": "50%", "suporte_chave": "38.2%"}))
    assert result.fibonacci is None
    assert result.elliott is not None


def test_extra_keys_drop_elliott_block():
    elliott = dict(VALID_RESPONSE["elliott"], extra="x")
    assert parse_analysis(_with(elliott=elliott)).elliott is None


def test_non_text_values_drop_block():
    fib = dict(VALID_RESPONSE["fibonacci"], projecao=161.8)
    assert parse_analysis(_with(fibonacci=fib)).fibonacci is None


def test_optional_blocks_absent():
    result = parse_analysis(_with(fibonacci=None, elliott=None))
    assert result.fibonacci is None
    assert result.elliott is None


def test_to_dict_round_trips_wire_keys(valid_text):
    assert parse_analysis(valid_text).to_dict() == VALID_RESPONSE


def test_deeply_nested_json_is_malformed():
    text = '{"a":' * 5000 + "1" + "}" * 5000
    with pytest.raises(ResponseError) as exc:
        parse_analysis(text)
    assert exc.value.reason is ResponseFailure.MALFORMED
