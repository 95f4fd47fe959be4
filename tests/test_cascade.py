import pytest

from salon_research.errors import UnrecoverableParseError
from salon_research.extraction.cascade import clean_list_line, extract
from salon_research.models import Shape


def test_direct_parse_wins_for_clean_json():
    result = extract('  ["Bella Hair Studio", "Glow Day Spa"]\n', Shape.NAME_LIST)

    assert result.strategy == "direct_parse"
    assert result.kind is Shape.NAME_LIST
    assert result.value == ["Bella Hair Studio", "Glow Day Spa"]


def test_direct_parse_unwraps_salons_object():
    result = extract('{"salons": ["Bella Hair Studio", "Glow Day Spa"]}', Shape.NAME_LIST)

    assert result.strategy == "direct_parse"
    assert result.value == ["Bella Hair Studio", "Glow Day Spa"]


def test_reasoning_wrapper_is_stripped():
    result = extract('<think>reasoning...</think>\n["Bella Hair", "1"]', Shape.NAME_LIST)

    assert result.strategy == "strip_reasoning_wrapper"
    assert result.value == ["Bella Hair", "1"]


def test_fenced_block_record():
    text = 'Here are the details:\n```json\n{"name": "Glow Day Spa", "address": "1 King St"}\n```\nEnjoy!'

    result = extract(text, Shape.RECORD)

    assert result.strategy == "fenced_block"
    assert result.value == {"name": "Glow Day Spa", "address": "1 King St"}


def test_balanced_scan_ignores_braces_inside_strings():
    text = 'Sure! {"name": "Brace } Spa", "rating": {"stars": 4.5}} and {"note": "extra"}'

    result = extract(text, Shape.RECORD)

    assert result.strategy == "balanced_scan"
    assert result.value["name"] == "Brace } Spa"
    assert result.value["rating"] == {"stars": 4.5}


def test_balanced_scan_keeps_largest_named_record():
    text = (
        'Quick match: {"name": "Glow"}. Full details: '
        '{"name": "Glow Day Spa", "address": "12 King St, Newtown", "rating": {"stars": 4.5}} done.'
    )

    result = extract(text, Shape.RECORD)

    assert result.strategy == "balanced_scan"
    assert result.value["name"] == "Glow Day Spa"
    assert result.value["address"] == "12 King St, Newtown"


def test_balanced_scan_skips_larger_record_without_name():
    text = (
        'Result: {"name": "Glow Day Spa", "address": "12 King St, Newtown"} '
        'and also {"name": "", "address": "1 Elsewhere Rd", "description": "n/a", "website": "x.com"}'
    )

    result = extract(text, Shape.RECORD)

    assert result.strategy == "balanced_scan"
    assert result.value == {"name": "Glow Day Spa", "address": "12 King St, Newtown"}


def test_balanced_scan_finds_embedded_name_array():
    text = 'Based on my search [1], the salons are ["Bella Hair Studio", "Glow Day Spa"] in total.'

    result = extract(text, Shape.NAME_LIST)

    assert result.strategy == "balanced_scan"
    assert result.value == ["Bella Hair Studio", "Glow Day Spa"]


def test_line_heuristic_parses_markdown_list():
    text = (
        "Here are the salons in Newtown:\n"
        "1. **Bella Hair Studio**\n"
        "2. Glow Day Spa,\n"
        "- bella hair   studio\n"
        "https://example.com/listing\n"
    )

    result = extract(text, Shape.NAME_LIST)

    assert result.strategy == "line_heuristic"
    assert result.value == ["Bella Hair Studio", "Glow Day Spa"]


def test_opposite_shape_when_list_returned_for_record():
    result = extract('["Bella Hair Studio", "Glow Day Spa"]', Shape.RECORD)

    assert result.strategy == "opposite_shape"
    assert result.kind is Shape.NAME_LIST
    assert result.value == ["Bella Hair Studio", "Glow Day Spa"]


def test_reference_marker_alone_is_unrecoverable():
    with pytest.raises(UnrecoverableParseError) as exc_info:
        extract("[38]", Shape.NAME_LIST)

    assert exc_info.value.expected == "name_list"
    assert exc_info.value.excerpt == "[38]"


def test_empty_text_is_unrecoverable():
    with pytest.raises(UnrecoverableParseError):
        extract("", Shape.RECORD)


@pytest.mark.parametrize("line, expected", [
    ("1. **Bella Hair**", "Bella Hair"),
    ("- \"Glow Day Spa\",", "Glow Day Spa"),
    ("(3) Nail Bar Newtown;", "Nail Bar Newtown"),
])
def test_clean_list_line(line, expected):
    assert clean_list_line(line) == expected
