from talentsift.llm.providers import extract_json, parse_json, strip_code_fences


def test_fenced_json_matches_plain_json() -> None:
    plain = '{"overall_rating": 7.5, "decision": "maybe"}'
    fenced = f"```json\n{plain}\n```"

    assert strip_code_fences(fenced) == plain
    assert extract_json(fenced) == extract_json(plain) == {"overall_rating": 7.5, "decision": "maybe"}


def test_json_is_sliced_out_of_surrounding_prose() -> None:
    content = 'Sure! Here is the result: {"skills": ["Python"]} Let me know.'
    assert extract_json(content) == {"skills": ["Python"]}


def test_garbage_yields_none_or_empty_dict_without_raising() -> None:
    assert extract_json("not json at all") is None
    assert extract_json("") is None
    assert extract_json(None) is None
    assert parse_json("{broken") == {}
    assert parse_json("[1, 2, 3]") == {}


def test_first_complete_object_wins_over_later_brace_groups() -> None:
    assert extract_json('{"overall_rating": 8} and alt {"overall_rating": 3}') == {"overall_rating": 8}
    content = 'Here is the profile: {"skills": ["Python"]} (scores use the {0-10} scale)'
    assert extract_json(content) == {"skills": ["Python"]}


def test_stray_brace_before_the_object_is_skipped() -> None:
    content = 'Scale {0-10}. Result: {"overall_rating": 6, "notes": "ok"}'
    assert parse_json(content) == {"overall_rating": 6, "notes": "ok"}
