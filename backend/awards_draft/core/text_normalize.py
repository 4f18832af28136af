import re
import unicodedata
from typing import Iterable


_PUNCT_RE = re.compile(r"[^\w\s]", flags=re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def normalize_title(value: str | None) -> str:
    """Comparison key for catalog titles and names.

    NFKD-decomposes, strips diacritics, casefolds, drops punctuation and
    collapses whitespace: "Amélie!" and "  amelie " share a key.
    """
    text = unicodedata.normalize("NFKD", str(value or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.casefold()
    text = _PUNCT_RE.sub("", text).replace("_", "")
    return _SPACE_RE.sub(" ", text).strip()


def normalize_ids(values: Iterable[int | str | None]) -> list[int]:
    """Positive integer ids, deduplicated, first occurrence order kept."""
    out: list[int] = []
    seen: set[int] = set()
    for value in values:
        try:
            n = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue
        if n <= 0 or n in seen:
            continue
        seen.add(n)
        out.append(n)
    return out
