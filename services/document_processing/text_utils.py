"""Text helpers shared by the document readers and the chunker.

Pure functions, no I/O.
"""

import re
from collections import Counter

DEFAULT_ENCODINGS = ["utf-8", "windows-1251", "iso-8859-1"]
REPLACEMENT_CHAR = "�"

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"(?<=[.!?…])\s+")
_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)

ABBREVIATIONS: dict[str, set[str]] = {
    "en": {"e.g.", "i.e.", "etc.", "vs.", "dr.", "mr.", "mrs.", "ms.", "prof.", "inc.", "ltd.", "no.", "fig."},
    "ru": {"т.е.", "т.д.", "т.п.", "др.", "пр.", "г.", "гг.", "см.", "стр.", "рис."},
    "de": {"z.b.", "d.h.", "usw.", "bzw.", "ca.", "dr.", "nr.", "vgl.", "evtl.", "s."},
    "fr": {"p.ex.", "c.-à-d.", "etc.", "m.", "mme.", "dr.", "cf.", "env."},
}

STOP_WORDS = {
    "that", "this", "with", "from", "have", "were", "been", "they", "their", "there",
    "which", "would", "could", "should", "about", "into", "than", "then", "them",
    "these", "those", "when", "what", "where", "will", "your", "also", "such", "only",
    "other", "some", "more", "most", "very", "over", "after", "before", "because",
    "между", "также", "чтобы", "этого", "который", "которые", "если", "было", "были",
    "eine", "einer", "nicht", "oder", "sind", "wird", "werden", "auch", "dass", "sich",
    "dans", "pour", "avec", "sont", "cette", "mais", "plus", "leur",
}


def detect_encoding(buffer: bytes, encodings: list[str] | None = None) -> tuple[str, str]:
    """Decode a buffer with the first encoding of a priority list that fits.

    An encoding fits when it decodes without error and the result contains no
    U+FFFD replacement character. When none fits, the buffer is decoded as
    UTF-8 with replacement characters. A leading UTF-8 BOM is removed.

    Args:
        buffer (bytes): Raw file content.
        encodings (list[str] | None): Priority list, defaults to UTF-8, Windows-1251, ISO-8859-1.

    Returns:
        tuple[str, str]: (encoding name, decoded text).
    """
    if buffer.startswith(b"\xef\xbb\xbf"):
        buffer = buffer[3:]
    for encoding in encodings or DEFAULT_ENCODINGS:
        try:
            text = buffer.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
        if REPLACEMENT_CHAR not in text:
            return encoding, text
    return "utf-8", buffer.decode("utf-8", errors="replace")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def split_words(text: str) -> list[str]:
    return [word for word in _WHITESPACE.split(text or "") if word]


def split_sentences(text: str, language: str = "en") -> list[str]:
    """Split text into sentences without breaking after known abbreviations.

    Args:
        text (str): Input text.
        language (str): Abbreviation table to use ("en", "ru", "de", "fr").

    Returns:
        list[str]: Stripped, non-empty sentences in order.
    """
    abbreviations = ABBREVIATIONS.get(language, ABBREVIATIONS["en"])
    sentences: list[str] = []
    pending = ""
    for part in _SENTENCE_END.split(normalize_whitespace(text)):
        pending = f"{pending} {part}" if pending else part
        last_word = pending.rsplit(" ", 1)[-1].lower()
        if last_word in abbreviations:
            continue
        sentences.append(pending.strip())
        pending = ""
    if pending.strip():
        sentences.append(pending.strip())
    return [s for s in sentences if s]


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Return the most frequent content words of a text.

    Words are lowercased letter runs of at least four characters that are not
    stop words. Ties keep the order of first occurrence.
    """
    words = [w.lower() for w in _WORD.findall(text or "")]
    counts = Counter(w for w in words if len(w) >= 4 and w not in STOP_WORDS)
    # Counter.most_common keeps insertion order for equal counts
    return [word for word, _ in counts.most_common(limit)]


def split_text_proportionally(text: str, page_count: int) -> list[str]:
    """Split a whole-document text into page_count slices of equal character length.

    The last slice absorbs the remainder.
    """
    page_count = max(page_count, 1)
    size = len(text) // page_count
    slices = [text[i * size:(i + 1) * size] for i in range(page_count - 1)]
    slices.append(text[(page_count - 1) * size:])
    return slices


def split_into_synthetic_pages(text: str, page_size: int) -> list[str]:
    """Cut text into consecutive pages of at most page_size characters.

    A cut backs off to the last whitespace inside the window so words stay
    whole. A window without whitespace is cut hard.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    pages: list[str] = []
    start = 0
    while start < len(text):
        end = start + page_size
        if end < len(text) and not text[end].isspace():
            cut = max(text.rfind(" ", start, end), text.rfind("\n", start, end))
            if cut > start:
                end = cut + 1
        pages.append(text[start:end])
        start = end
    return pages


def format_file_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
