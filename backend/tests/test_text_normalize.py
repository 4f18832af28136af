from __future__ import annotations

from awards_draft.core.text_normalize import normalize_ids, normalize_title


def test_normalize_title_strips_diacritics_case_and_punctuation() -> None:
    assert normalize_title("Amélie!") == normalize_title("  amelie ")
    assert normalize_title("Everything Everywhere All at Once") == normalize_title(
        "everything, everywhere... all at once"
    )


def test_normalize_title_collapses_whitespace_and_underscores() -> None:
    assert normalize_title("The   Zone_of\tInterest") == "the zoneof interest"


def test_normalize_title_keeps_distinct_titles_apart() -> None:
    assert normalize_title("Dune") != normalize_title("Dune: Part Two")
    assert normalize_title(None) == ""


def test_normalize_ids_dedupes_and_filters_invalid() -> None:
    assert normalize_ids([3, "2", "x", 2, -1, 0, None, "3", 5]) == [3, 2, 5]
