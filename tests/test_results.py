import pytest

from cmcp.results import (
    DEFAULT_MAX_LENGTH,
    ExecuteResult,
    ImageData,
    extract_images,
    truncate_response,
)

NOTICE_TAIL = "chars omitted. Use your code to extract only the data you need, or increase max_length.]"


def test_short_text_unchanged():
    assert truncate_response("hello\nworld", 100) == "hello\nworld"


def test_zero_disables_truncation():
    text = "x" * 500
    assert truncate_response(text, 0) == text


def test_default_limit_keeps_text_of_that_size():
    text = "y" * DEFAULT_MAX_LENGTH
    assert truncate_response(text) == text


def test_truncates_at_last_newline():
    text = "aaa\nbbbbbb"
    result = truncate_response(text, 6)
    assert result == f"aaa\n\n[truncated — 7 {NOTICE_TAIL}"


def test_truncates_hard_without_newline():
    text = "z" * 20
    result = truncate_response(text, 5)
    assert result.startswith("zzzzz\n\n[truncated — ")
    assert result.endswith(NOTICE_TAIL)


@pytest.mark.parametrize("limit", [1, 3, 10, 25])
def test_kept_prefix_is_prefix_of_input(limit):
    text = "line one\nline two\nline three"
    kept = truncate_response(text, limit).split("\n\n[truncated")[0]
    assert text.startswith(kept)
    assert len(kept) <= limit


def test_extract_nested_images():
    value = {
        "content": [
            {"type": "text", "text": "hi"},
            {"type": "image", "data": "AAAA", "mimeType": "image/png"},
            {"nested": [{"type": "image", "data": "BBBB", "mimeType": "image/jpeg"}]},
        ]
    }
    images = extract_images(value)
    assert images == [
        ImageData(data="AAAA", mime_type="image/png"),
        ImageData(data="BBBB", mime_type="image/jpeg"),
    ]
    assert value["content"][1]["data"] == "[image #0 extracted]"
    assert value["content"][2]["nested"][0]["data"] == "[image #1 extracted]"
    assert value["content"][0] == {"type": "text", "text": "hi"}


def test_incomplete_image_left_alone():
    value = [{"type": "image", "data": "AAAA"}]
    assert extract_images(value) == []
    assert value == [{"type": "image", "data": "AAAA"}]


def test_scalars_have_no_images():
    assert extract_images(3) == []
    assert extract_images("image") == []


def test_execute_result_defaults():
    result = ExecuteResult(text="done")
    assert result.images == []
    assert result.text == "done"