from typing import Iterable, List, Tuple


def without_header(
    headers: Iterable[Tuple[str, str]], excluded: str
) -> List[Tuple[str, str]]:
    """Drop every occurrence of one header (case-insensitive), keep repeats of the rest."""
    excluded = excluded.lower()
    return [(name, value) for name, value in headers if name.lower() != excluded]
