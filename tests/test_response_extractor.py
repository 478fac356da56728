from gateway.services.response_extractor import (
    FALLBACK_ANSWER,
    extract_answer,
    extract_json,
    first_balanced_object,
    strip_echoed_prompt,
)


def test_generation_list_strips_echoed_prompt():
    raw = [{"generated_text": "Course materials: ...\nAnswer: The midterm is on Oct 12."}]

    assert extract_answer(raw) == "The midterm is on Oct 12."


def test_generation_list_uses_last_marker():
    assert strip_echoed_prompt("Answer: first Answer: second") == "second"


def test_string_list_and_plain_string():
    assert extract_answer(["Plain generation"]) == "Plain generation"
    assert extract_answer("Just text") == "Just text"


def test_gemini_candidate_tree():
    raw = {"candidates": [{"content": {"parts": [{"text": "Part one. "}, {"text": "Part two."}]}}]}

    assert extract_answer(raw) == "Part one. Part two."


def test_text_object_fields():
    assert extract_answer({"generated_text": "  from object  "}) == "from object"
    assert extract_answer({"answer": "direct answer"}) == "direct answer"


def test_unknown_shapes_fall_back_to_fixed_message():
    assert extract_answer({"unexpected": 1}) == FALLBACK_ANSWER
    assert extract_answer([]) == FALLBACK_ANSWER
    assert extract_answer(None) == FALLBACK_ANSWER
    assert extract_answer([{"generated_text": "Answer:   "}]) == FALLBACK_ANSWER


def test_extract_json_direct_fenced_and_embedded():
    direct = {"candidates": [{"content": {"parts": [{"text": '{"tasks": []}'}]}}]}
    fenced = "Here you go:\n```json\n{\"stressLevel\": 4}\n```"
    embedded = 'Sure! {"note": "braces } inside strings", "n": 1} trailing words'

    assert extract_json(direct) == {"tasks": []}
    assert extract_json(fenced) == {"stressLevel": 4}
    assert extract_json(embedded) == {"note": "braces } inside strings", "n": 1}


def test_extract_json_degrades_to_raw_response():
    assert extract_json("no json here") == {"rawResponse": "no json here"}


def test_first_balanced_object_skips_unbalanced_prefix():
    assert first_balanced_object('{ broken {"ok": true}') == '{"ok": true}'
    assert first_balanced_object('x {"a": {"b": 1}} y') == '{"a": {"b": 1}}'


def test_fenced_json_inside_string_list():
    assert extract_json(["```json\n{\"a\":1}\n```"]) == {"a": 1}


def test_envelope_without_model_text_is_not_treated_as_a_result():
    blocked = {"candidates": [{"finishReason": "SAFETY"}], "usageMetadata": {"promptTokenCount": 12}}

    result = extract_json(blocked)

    assert set(result) == {"rawResponse"}
    assert '"finishReason": "SAFETY"' in result["rawResponse"]
