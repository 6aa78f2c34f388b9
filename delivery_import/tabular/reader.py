from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from ..models.parsed_row import FIRST_DATA_ROW, REQUIRED_HEADERS

"""CSV reader: raw upload bytes -> header-keyed raw rows.

Everything raised here is a batch-level error: the whole upload is rejected
before a single row is produced. Row-level problems are left to the
validator.

- 1行目をヘッダとして扱い、2行目以降をデータ行 (row_number = 2 起点)
- 空行 / 全セル空白の行はスキップ (行番号は非空行の通し番号)
- ヘッダ列の順序は問わない。必須列が欠落していればファイルエラー
- ヘッダより列数の多い行は残し、行番号付きで overlong に記録 (行単位の検証エラー)
"""

__all__ = [
    "RawRow",
    "ImportFileError",
    "EmptyFileError",
    "MalformedFileError",
    "FileEncodingError",
    "MissingColumnsError",
    "CsvData",
    "read_csv_rows",
]

RawRow = dict[str, str]


class ImportFileError(Exception):
    """Base class for errors that reject the whole uploaded file."""


class EmptyFileError(ImportFileError):
    """Raised when the upload has no content (not even a header)."""


class MalformedFileError(ImportFileError):
    """Raised when the delimited text cannot be tokenized."""


class FileEncodingError(ImportFileError):
    """Raised when the bytes are not valid in the configured encoding."""


class MissingColumnsError(ImportFileError):
    """Raised when required columns are missing from the header row."""


@dataclass
class CsvData:
    columns: list[str]
    rows: list[RawRow]  # non-empty data rows in file order
    # row_number -> 実際のフィールド数 (ヘッダより多く、超過分に値がある行のみ)
    overlong: dict[int, int] = field(default_factory=dict)

    def numbered(self) -> list[tuple[int, RawRow]]:
        """Pair each row with its 1-based source row number (header = 1)."""
        return [(idx + FIRST_DATA_ROW, row) for idx, row in enumerate(self.rows)]

    def field_count_error(self, row_number: int) -> str | None:
        """Message for a row that carries more fields than the header, else None."""
        count = self.overlong.get(row_number)
        if count is None:
            return None
        return f"Row has {count} fields, expected {len(self.columns)}"


def _cell(value: object) -> str:
    # 欠損 (NaN / None) は空文字に寄せる
    return value if isinstance(value, str) else ""


def _parse(content: bytes, *, delimiter: str, encoding: str, **kwargs: Any) -> pd.DataFrame:
    # header=None: ヘッダ行もデータとして読む (1 行目の列数が表の幅になり、暗黙の index 推定が起きない)
    try:
        return pd.read_csv(
            io.BytesIO(content),
            sep=delimiter,
            encoding=encoding,
            engine="python",
            header=None,
            dtype=str,
            keep_default_na=False,  # "NA" / "null" はテキストとして保持
            skip_blank_lines=True,
            **kwargs,
        )
    except UnicodeDecodeError as e:
        raise FileEncodingError(f"file is not valid {encoding}: {e}") from e
    except pd.errors.EmptyDataError as e:
        raise EmptyFileError(f"file is empty: {e}") from e
    except pd.errors.ParserError as e:
        raise MalformedFileError(f"malformed delimited text: {e}") from e


def read_csv_rows(content: bytes, *, delimiter: str = ",", encoding: str = "utf-8-sig") -> CsvData:
    """Parse uploaded delimited text into header-keyed rows.

    A data row with more fields than the header is kept: its first fields are
    mapped onto the header and the row is reported in ``CsvData.overlong``.
    Extra fields that are all blank (trailing delimiters) are ignored.

    Parameters
    ----------
    content: raw upload bytes
    delimiter: field separator
    encoding: text encoding (default tolerates a UTF-8 BOM)

    Raises
    ------
    EmptyFileError, FileEncodingError, MalformedFileError, MissingColumnsError
    """
    if not content or not content.strip():
        raise EmptyFileError("file is empty")

    # 1 回目: 字句解析のみ (閉じていない引用符などはファイル全体のエラー)
    _parse(content, delimiter=delimiter, encoding=encoding, usecols=[0])

    overflow: list[list[str]] = []

    def _keep_overflow(fields: list[str]) -> list[str]:
        # 列数超過の行は退避し、空リストを返す (全列欠損 = 目印)
        overflow.append(fields)
        return []

    df = _parse(content, delimiter=delimiter, encoding=encoding, on_bad_lines=_keep_overflow)

    records = list(df.itertuples(index=False, name=None))
    columns = [_cell(v).strip() for v in records[0]]
    width = len(columns)

    missing = [h for h in REQUIRED_HEADERS if h not in columns]
    if missing:
        raise MissingColumnsError(f"missing columns: {missing}")

    rows: list[RawRow] = []
    overlong: dict[int, int] = {}
    pending = iter(overflow)
    for values in records[1:]:
        extra_count = 0
        if not isinstance(values[0], str):
            # 通常行は先頭フィールドが必ず文字列。欠損なら退避した超過行
            fields = next(pending)
            values = tuple(fields[:width])
            if any(f.strip() for f in fields[width:]):
                extra_count = len(fields)
        row = {name: _cell(v) for name, v in zip(columns, values)}
        if all(not v.strip() for v in row.values()):
            continue
        if extra_count:
            overlong[FIRST_DATA_ROW + len(rows)] = extra_count
        rows.append(row)
    return CsvData(columns=columns, rows=rows, overlong=overlong)
