"""
Column-offset detection for fixed-width tabular output

Used by winget list and winget upgrade. The header row gives each column's
start offset; data rows are sliced at those offsets.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple


SEPARATOR_PATTERN = re.compile(r'^\s*-{3,}')
FOOTER_PATTERN = re.compile(
    r'^\d+\s+(?:packages?(?:\(s\))?|upgrades?)\b|additional entries',
    re.IGNORECASE
)
TOKEN_SPLIT = re.compile(r'\s{2,}')
ELLIPSIS = '…'

# How many lines below the header the dashed separator may appear
SEPARATOR_WINDOW = 3
MIN_ROW_LENGTH = 3


def clean_field(value: str) -> str:
    return value.strip().replace(ELLIPSIS, '...')


@dataclass
class ColumnLayout:
    """Column positions found in a header row"""
    header_index: int
    header_offset: int
    columns: List[Tuple[str, int]]  # (column name, start offset), left to right
    data_start: int
    optional: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.columns]

    def start_of(self, name: str) -> Optional[int]:
        for column, start in self.columns:
            if column == name:
                return start
        return None

    def end_of(self, name: str) -> Optional[int]:
        """Start of the column right after `name`, None for end-of-line"""
        for i, (column, _) in enumerate(self.columns):
            if column == name and i + 1 < len(self.columns):
                return self.columns[i + 1][1]
        return None

    def strip_offset(self, row: str) -> str:
        """Remove the header's leading noise width when the row is padded the same way"""
        if self.header_offset and not row[:self.header_offset].strip():
            return row[self.header_offset:]
        return row

    def is_aligned(self, row: str) -> bool:
        """True when no column start cuts through a token"""
        for _, start in self.columns[1:]:
            if start < len(row) and not row[start - 1].isspace():
                return False
        return True

    def split(self, row: str) -> Dict[str, str]:
        """Slice a data row into named fields

        Rows that do not line up with the header are split on runs of two
        or more spaces instead, dropping optional columns when there are
        fewer tokens than columns.
        """
        if self.is_aligned(row):
            fields = {}
            for column, start in self.columns:
                end = self.end_of(column)
                fields[column] = clean_field(row[start:end] if end is not None else row[start:])
            return fields

        tokens = [t for t in TOKEN_SPLIT.split(row.strip()) if t]
        names = self.names
        if len(tokens) < len(names):
            names = [n for n in names if n not in self.optional]
        return {name: clean_field(token) for name, token in zip(names, tokens)}

    def rows(self, lines: Sequence[str]) -> Iterator[Dict[str, str]]:
        """Yield field dicts for every data row below the header"""
        for line in lines[self.data_start:]:
            row = self.strip_offset(line)
            stripped = row.strip()
            if len(stripped) < MIN_ROW_LENGTH:
                continue
            if FOOTER_PATTERN.search(stripped) or SEPARATOR_PATTERN.match(stripped):
                continue
            yield self.split(row)


def find_layout(lines: Sequence[str],
                required: Sequence[str] = ('Version',),
                extra: Sequence[str] = ('Version', 'Match', 'Available', 'Source'),
                optional: Sequence[str] = ('Match',)) -> Optional[ColumnLayout]:
    """
    Locate a Name/Id/... header and compute column offsets

    Args:
        lines: Normalized output lines
        required: Header words that must all be present
        extra: Columns to locate (besides Name and Id) when present
        optional: Columns that are often blank in data rows

    Returns:
        ColumnLayout, or None if no header row was found
    """
    for index, line in enumerate(lines):
        name_at = line.find('Name')
        if name_at < 0:
            continue
        id_at = line.find('Id', name_at + len('Name'))
        if id_at < 0 or not all(word in line[name_at:] for word in required):
            continue

        corrected = line[name_at:]
        columns = [('Name', 0), ('Id', id_at - name_at)]
        for column in extra:
            position = corrected.find(column)
            if position > 0:
                columns.append((column, position))
        columns.sort(key=lambda c: c[1])

        data_start = index + 1
        for j in range(index + 1, min(len(lines), index + 1 + SEPARATOR_WINDOW)):
            if SEPARATOR_PATTERN.match(lines[j]):
                data_start = j + 1
                break

        return ColumnLayout(
            header_index=index,
            header_offset=name_at,
            columns=columns,
            data_start=data_start,
            optional=tuple(optional),
        )
    return None
