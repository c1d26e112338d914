"""Text cleaning utilities."""
import html
import re

_TAG = re.compile(r'<(script|style)\b.*?</\1>|</?[a-zA-Z!][^>]*>', re.IGNORECASE | re.DOTALL)


def strip_markup(text: str) -> str:
    """Drop HTML tags and decode entities left over from e-book or web exports."""
    if '<' not in text and '&' not in text:
        return text
    return html.unescape(_TAG.sub(' ', text))


def clean_text(text: str) -> str:
    """Normalize raw book text before chunking.

    Args:
        text: Text read from a file or pasted by the user

    Returns:
        Cleaned text with paragraphs separated by exactly one blank line
    """
    text = text.lstrip('\ufeff')
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = strip_markup(text).replace('\xa0', ' ')

    # Words split across lines by hard wrapping
    text = re.sub(r'(\w+)-[ \t]*\n[ \t]*(\w+)', r'\1\2', text)

    text = re.sub(r'[ \t]+', ' ', text)
    lines = [line.strip() for line in text.split('\n')]
    text = '\n'.join(lines)

    # Paragraph breaks collapse to a single blank line
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()
