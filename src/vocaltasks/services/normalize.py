import unicodedata


def normalize_text(text: str) -> str:
    """Lowercase and strip diacritics so "Après-demain" matches "apres-demain"."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
