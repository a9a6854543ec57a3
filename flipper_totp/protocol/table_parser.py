"""
Tabular Response Parser

Turns fixed-column ASCII tables printed by the device into records keyed by
column header. Two layouts are understood:

    Name  Len            +-----+------+
    ----  ---            | #   | Name |
    abc   6              +-----+------+
                         | 1   | abc  |
                         +-----+------+

Column offsets come from the separator row below the header. Rows that do
not line up with those offsets are skipped rather than rejected, since the
output format is not byte-stable across firmware versions.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

Record = Dict[str, str]
Span = Tuple[int, Optional[int]]

RULE_CHARS = set("+|")
SEPARATOR_PATTERN = re.compile(r"^[\s\-=+|]*-[\s\-=+|]*$")

logger = logging.getLogger(__name__)


def is_separator(line: str) -> bool:
    """True for rows made only of dashes, column rules and spaces"""
    return bool(SEPARATOR_PATTERN.match(line))


def column_spans(separator: str) -> Tuple[List[Span], List[int]]:
    """
    Derive column spans from a separator row.

    Returns:
        (spans, rule_positions). For ruled tables the spans lie between
        consecutive ``+`` positions and rule_positions lists those
        positions. Otherwise each run of dashes is a column and the last
        column stays open-ended.
    """
    rules = [i for i, ch in enumerate(separator) if ch in RULE_CHARS]
    if rules:
        spans = [(start + 1, end) for start, end in zip(rules, rules[1:]) if end > start + 1]
        return spans, rules

    runs = [(m.start(), m.end()) for m in re.finditer(r"[-=]+", separator)]
    if not runs:
        return [], []
    spans: List[Span] = list(runs[:-1])
    spans.append((runs[-1][0], None))
    return spans, []


def _fits(line: str, spans: List[Span], rules: List[int]) -> bool:
    """Check that a row's text stays inside the columns"""
    if rules:
        stripped = line.rstrip()
        return all(pos < len(stripped) and stripped[pos] in RULE_CHARS for pos in rules)

    covered = set()
    for start, end in spans:
        covered.update(range(start, len(line) if end is None else min(end, len(line))))
    return all(ch.isspace() for i, ch in enumerate(line) if i not in covered)


def _slice(line: str, spans: List[Span]) -> List[str]:
    return [line[start:end].strip() for start, end in spans]


def parse(text: str) -> List[Record]:
    """
    Parse a table into records.

    Args:
        text: Header line, separator line and data rows

    Returns:
        One record per data row, in the order the device printed them.
        Empty when no header/separator pair is found.
    """
    lines = [line.rstrip("\r") for line in text.split("\n")]

    header_index = None
    for i in range(1, len(lines)):
        if is_separator(lines[i]) and lines[i - 1].strip() and not is_separator(lines[i - 1]):
            header_index = i - 1
            break

    if header_index is None:
        logger.debug("No table header found in response")
        return []

    spans, rules = column_spans(lines[header_index + 1])
    if not spans:
        return []

    header = lines[header_index]
    if not _fits(header, spans, rules):
        logger.debug(f"Header does not line up with separator: {header!r}")
        return []
    labels = _slice(header, spans)

    records = []
    for line in lines[header_index + 2:]:
        if not line.strip() or is_separator(line):
            continue

        if not _fits(line, spans, rules):
            logger.debug(f"Skipping misaligned row: {line!r}")
            continue

        values = _slice(line, spans)
        if not any(values):
            continue

        records.append(dict(zip(labels, values)))

    return records
