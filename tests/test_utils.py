import pytest

from utils import extract_json_from_response, render_template


def test_render_template_fills_known_fields():
    assert render_template("Hi {{{name}}}, from {{{ city }}}{{{missing}}}", {"name": "Asha", "city": "Pune"}) == (
        "Hi Asha, from Pune"
    )


@pytest.mark.parametrize(
    "text",
    ['{"a": 1}', '```json\n{"a": 1}\n```', 'Sure! {"a": 1} Hope this helps.'],
)
def test_extract_json_variants(text):
    assert extract_json_from_response(text) == {"a": 1}


@pytest.mark.parametrize("text", ["", "no braces here", "[1, 2]", "{broken"])
def test_extract_json_rejects_non_objects(text):
    with pytest.raises(ValueError):
        extract_json_from_response(text)
