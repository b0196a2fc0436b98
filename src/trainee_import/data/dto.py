from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
from uuid import uuid4

# Raw cell variant: String | Number | Bool | Empty
CellValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class SpreadsheetUpload:
    """The original file as selected by the operator. Resubmitted verbatim to the backend."""
    file_name: str
    content: bytes = field(repr=False)
    content_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Path, content_type: Optional[str] = None) -> "SpreadsheetUpload":
        path = Path(path)
        return cls(file_name=path.name, content=path.read_bytes(), content_type=content_type)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Workbook:
    """Decoded workbook: sheet name -> grid of raw cell values (header row included)."""
    sheets: Dict[str, List[List[CellValue]]]
    date_system: int = 1900  # 1900 | 1904

    @property
    def sheet_names(self) -> List[str]:
        return list(self.sheets.keys())

    def has_sheet(self, name: str) -> bool:
        return name in self.sheets

    def grid(self, name: str) -> List[List[CellValue]]:
        return self.sheets[name]


@dataclass
class RawRow:
    """One data row. row_number is 1-based with the header excluded."""
    row_number: int
    values: Dict[str, CellValue]

    def get(self, column: str, default: CellValue = None) -> CellValue:
        return self.values.get(column, default)


@dataclass
class SheetRows:
    sheet_name: str
    columns: List[str] = field(default_factory=list)
    rows: List[RawRow] = field(default_factory=list)
    present: bool = True

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def by_row_number(self) -> Dict[int, RawRow]:
        return {row.row_number: row for row in self.rows}


@dataclass
class ImportBatch:
    """Unit of work: one file, its trainee rows and its (possibly empty) certificate rows."""
    upload: SpreadsheetUpload
    trainees: SheetRows
    certificates: SheetRows
    date_system: int = 1900
    batch_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass
class ReconciledRow:
    row_number: int
    values: Dict[str, CellValue]
    succeeded: bool
    reason: Optional[str] = None
    known_locally: bool = True  # False when the backend reported a row the preview never had


@dataclass
class ReconciledRecordSet:
    label: str
    total_rows: int
    success_count: int
    failure_count: int
    columns: List[str]
    rows: List[ReconciledRow]

    @property
    def failed_rows(self) -> List[ReconciledRow]:
        return [r for r in self.rows if not r.succeeded]

    @property
    def succeeded_rows(self) -> List[ReconciledRow]:
        return [r for r in self.rows if r.succeeded]


@dataclass
class ReconciledImport:
    message: str
    trainees: ReconciledRecordSet
    certificates: ReconciledRecordSet
    batch_id: Optional[str] = None
