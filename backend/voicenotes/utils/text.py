"""Small text helpers for transcript bodies."""

TITLE_WORDS = 5


def word_count(content: str | None) -> int:
    """Number of whitespace-delimited tokens; always recomputed from the text."""
    if not content:
        return 0
    return len(content.split())


def derive_title(content: str, max_words: int = TITLE_WORDS) -> str:
    """Build a display title from the first few words of the content."""
    words = content.split()
    if not words:
        return "New Transcript"
    title = " ".join(words[:max_words])
    if len(words) > max_words:
        title += "..."
    return title
