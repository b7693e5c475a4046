import csv
import io
from dataclasses import dataclass, field

from arena.core.errors import FormatError


@dataclass(frozen=True)
class TabularValue:
    """Header plus data rows, every cell kept as a string."""

    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def column(self, name: str) -> list[str]:
        try:
            index = self.headers.index(name)
        except ValueError:
            raise FormatError(f'Column "{name}" not found in CSV', column=name)
        return [row[index] for row in self.rows]


def parse_csv(text: str) -> TabularValue:
    """Parse CSV text into a :class:`TabularValue`.

    Standard quoting applies, so quoted cells may hold commas and newlines.
    Cells are stripped of surrounding whitespace and blank lines are skipped.
    A row whose cell count differs from the header's is rejected.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    # Physical lines behind the record being read; a record is blank only if
    # its source text is, so a quoted empty cell still counts as data.
    consumed: list[str] = []

    def _lines():
        for line in io.StringIO(text, newline=""):
            consumed.append(line)
            yield line

    records: list[tuple[int, list[str]]] = []
    reader = csv.reader(_lines(), strict=True)
    try:
        for record in reader:
            source = "".join(consumed)
            consumed.clear()
            if not source.strip():
                continue
            records.append((reader.line_num, [cell.strip() for cell in record]))
    except csv.Error as e:
        raise FormatError(f"Malformed CSV near line {reader.line_num}: {e}", line=reader.line_num)

    if len(records) < 2:
        raise FormatError("CSV must have at least a header row and one data row")

    headers = records[0][1]
    rows = []
    for line_num, cells in records[1:]:
        if len(cells) != len(headers):
            raise FormatError(
                f"Line {line_num} has {len(cells)} cells, header has {len(headers)}",
                line=line_num,
                cells=len(cells),
                expected=len(headers),
            )
        rows.append(cells)
    return TabularValue(headers=headers, rows=rows)


def decode_csv_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise FormatError("CSV file must be UTF-8 encoded text")


def to_csv_text(tabular: TabularValue) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(tabular.headers)
    writer.writerows(tabular.rows)
    return buf.getvalue()
