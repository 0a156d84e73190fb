from typing import Dict, List


def levenshtein_distance(a: str, b: str) -> int:
    """Classic insert/delete/substitute edit distance over the full DP table."""
    rows = len(a) + 1
    cols = len(b) + 1
    matrix = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if a[i - 1] == b[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = min(
                    matrix[i - 1][j - 1] + 1,
                    matrix[i][j - 1] + 1,
                    matrix[i - 1][j] + 1,
                )

    return matrix[-1][-1]


def similarity(a: str, b: str) -> float:
    """
    Normalised similarity in [0, 1]. Callers lower-case both sides when they
    want a case-insensitive comparison.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def map_headers(headers: List[str], expected: List[str], threshold: float = 0.7) -> Dict[str, str]:
    """
    Map each expected field name to the uploaded header that best resembles it.

    A header matches when either name contains the other (case-insensitive)
    or their similarity exceeds the threshold. Exact matches always win.
    """
    mapping: Dict[str, str] = {}
    taken = set()

    for field in expected:
        if field in headers:
            mapping[field] = field
            taken.add(field)

    for field in expected:
        if field in mapping:
            continue
        wanted = field.lower()
        for header in headers:
            if header in taken:
                continue
            candidate = str(header).strip().lower()
            if not candidate:
                continue
            if (
                wanted in candidate
                or candidate in wanted
                or similarity(candidate, wanted) > threshold
            ):
                mapping[field] = header
                taken.add(header)
                break

    return mapping
