from typing import List

HEADER_VALUE_SEPARATOR = "; "


def join_header_values(values: List[str]) -> str:
    return HEADER_VALUE_SEPARATOR.join(values)


def split_header_values(text: str) -> List[str]:
    # values that themselves contain the separator cannot be told apart on re-split
    return text.split(HEADER_VALUE_SEPARATOR)


def format_duration(seconds: float) -> str:
    """Render an elapsed time the way the response view shows it, e.g. '350 ms' or '4.00 s'."""
    if seconds < 1:
        return f"{int(round(seconds * 1000))} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    if seconds < 3600:
        return f"{seconds / 60:.2f} m"
    return f"{seconds / 3600:.2f} h"
