def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()

def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()

def to_path_list(value: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """
    Accepts a comma-separated string or a sequence of paths and returns a clean list.
    Empty entries are dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [p.strip() for p in value if p and p.strip()]
