import pytest

from feedalert.errors import ValidationError
from feedalert.utils.text import extract_title, strip_markup, truncate_content, truncate_title
from feedalert.utils.tokens import is_valid_device_token, mask_token, validate_device_token


def test_strip_markup_removes_tags_and_collapses_whitespace():
    assert strip_markup("<p>Hello\n\n  <b>world</b></p>") == "Hello world"


def test_truncate_title_marks_the_cut():
    assert truncate_title("x" * 60) == "x" * 60
    assert truncate_title("x" * 61) == "x" * 60 + "..."


def test_truncate_content_strips_before_cutting():
    assert truncate_content("<i>short</i>") == "short"
    assert truncate_content("y" * 250) == "y" * 200 + "..."


@pytest.mark.parametrize("content, expected", [
    ("", "New Post"),
    ("\n  \n", "New Post"),
    ("Quake hits coast. Damage reported", "Quake hits coast"),
    ("Headline only\nSecond line. With more", "Headline only"),
    ("<p>Tagged line</p>", "Tagged line"),
])
def test_extract_title(content, expected):
    assert extract_title(content) == expected


def test_extract_title_is_limited_to_title_length():
    assert extract_title("z" * 80) == "z" * 60 + "..."


@pytest.mark.parametrize("token, valid", [
    ("a" * 64, True),
    ("ABCDEF0123456789" * 4, True),
    ("a" * 63, False),
    ("g" * 64, False),
    ("", False),
    ("a" * 64 + "\n", False),
])
def test_device_token_format(token, valid):
    assert is_valid_device_token(token) is valid


def test_validate_device_token_raises_on_malformed_token():
    with pytest.raises(ValidationError):
        validate_device_token("1234")


def test_validate_device_token_rejects_trailing_newline():
    with pytest.raises(ValidationError):
        validate_device_token("a" * 64 + "\n")


def test_mask_token():
    assert mask_token("abcdef0123456789" * 4) == "abcdef0123456789..."
