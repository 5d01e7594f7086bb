"""Text helpers for shaping push notification titles and bodies."""
import re

TITLE_MAX_LENGTH = 60
BODY_MAX_LENGTH = 200

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_END_RE = re.compile(r"[.!?]\s+")


def strip_markup(content: str) -> str:
    """Remove HTML tags and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub("", content or "")).strip()


def truncate(text: str, max_length: int) -> str:
    """Cut text to max_length characters, marking the cut with '...'."""
    if len(text) > max_length:
        return f"{text[:max_length]}..."
    return text


def truncate_title(title: str) -> str:
    return truncate(title, TITLE_MAX_LENGTH)


def truncate_content(content: str) -> str:
    return truncate(strip_markup(content), BODY_MAX_LENGTH)


def extract_title(content: str) -> str:
    """Derive a push title from post content.

    Takes the shorter of the first sentence and the first line of the
    markup-free content, limited to 60 characters.
    """
    if not content:
        return "New Post"

    # Lines are split before whitespace is collapsed
    lines = [strip_markup(line) for line in content.split("\n")]
    first_line = next((line for line in lines if line), "")
    if not first_line:
        return "New Post"
    first_sentence = _SENTENCE_END_RE.split(strip_markup(content))[0]

    title = first_sentence if len(first_sentence) <= len(first_line) else first_line
    return truncate_title(title)
