from .core import PLACEHOLDER_NAME


def normalize_key(identifier) -> str:
    """Lookup key for a name, numeric id or search query: trimmed and lowercased."""
    if not isinstance(identifier, str):
        identifier = str(identifier)
    return identifier.strip().lower()


def parse_id(value) -> int:
    """Numeric id from an identifier, or 0 when it is not a number."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    s = str(value or '').strip()
    return int(s) if s.isdigit() else 0


def placeholder_name(key) -> str:
    return PLACEHOLDER_NAME.format(key=key)
