"""Device input file parser adapter.

This adapter implements IDeviceListParser for CSV and Excel files listing
the devices to reconcile.
"""

import csv
import io
import logging
from typing import Any, Optional

from openpyxl import load_workbook

from ...api.exceptions import InputSchemaError
from ..domain.entities import IdentifierType, InputRow, ValidationResult
from ..domain.ports import IDeviceListParser

logger = logging.getLogger(__name__)

NAME_COLUMN = "DeviceName"

# First header cell -> identifier namespace of the file
ID_COLUMNS = {
    "ManagedDeviceId": IdentifierType.MANAGEMENT_ID,
    "AzureADDeviceId": IdentifierType.DIRECTORY_ID,
}


class DeviceListParser(IDeviceListParser):
    """CSV/XLSX parser using csv and openpyxl.

    Expected format (header is mandatory and must match exactly):
    | ManagedDeviceId | DeviceName |      | AzureADDeviceId | DeviceName |
    |-----------------|------------|  or  |-----------------|------------|
    | 0f1e...         | LAPTOP-01  |      | 8c2d...         | LAPTOP-01  |
    """

    def parse(
        self,
        file_content: bytes,
        filename: Optional[str] = None,
    ) -> tuple[list[InputRow], IdentifierType]:
        """Parse a CSV or Excel file.

        Raises:
            InputSchemaError: If the file cannot be read or the header is wrong
        """
        if filename and filename.lower().endswith((".xlsx", ".xlsm")):
            return self._parse_excel(file_content)
        if filename and filename.lower().endswith(".csv"):
            return self._parse_csv(file_content)
        if self._is_csv(file_content):
            return self._parse_csv(file_content)
        return self._parse_excel(file_content)

    def _is_csv(self, file_content: bytes) -> bool:
        try:
            text = file_content.decode("utf-8-sig")
        except UnicodeDecodeError:
            # Binary, likely a workbook
            return False
        first_line = text.splitlines()[0] if text else ""
        return any(d in first_line for d in (",", ";", "\t"))

    def _parse_csv(self, file_content: bytes) -> tuple[list[InputRow], IdentifierType]:
        try:
            text = file_content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InputSchemaError(f"CSV file is not valid UTF-8: {e}", cause=e)

        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        reader = csv.reader(io.StringIO(text), dialect)
        try:
            header = next(reader)
        except StopIteration:
            raise InputSchemaError("CSV file is empty")
        except csv.Error as e:
            raise InputSchemaError(f"Failed to parse CSV file: {e}", cause=e)

        id_type = self._check_header(header)

        rows = []
        try:
            for row_num, row in enumerate(reader, start=2):
                parsed = self._to_row(row_num, row)
                if parsed:
                    rows.append(parsed)
        except csv.Error as e:
            raise InputSchemaError(f"Failed to parse CSV file: {e}", cause=e)

        logger.info(f"Parsed {len(rows)} rows from CSV file")
        return rows, id_type

    def _parse_excel(self, file_content: bytes) -> tuple[list[InputRow], IdentifierType]:
        try:
            wb = load_workbook(filename=io.BytesIO(file_content), read_only=True)
        except Exception as e:
            logger.error(f"Failed to open Excel file: {e}")
            raise InputSchemaError(f"Failed to parse Excel file: {e}", cause=e)

        try:
            ws = wb.active
            if ws is None:
                raise InputSchemaError("Excel file has no active worksheet")

            values = ws.iter_rows(values_only=True)
            header = next(values, None)
            if header is None:
                raise InputSchemaError("Excel file is empty")

            id_type = self._check_header(header)

            rows = []
            for row_num, row in enumerate(values, start=2):
                parsed = self._to_row(row_num, row)
                if parsed:
                    rows.append(parsed)
        finally:
            wb.close()

        logger.info(f"Parsed {len(rows)} rows from Excel file")
        return rows, id_type

    @staticmethod
    def _cell(value: Any) -> str:
        return "" if value is None else str(value).strip()

    def _check_header(self, header) -> IdentifierType:
        cells = [self._cell(c) for c in header]
        # Workbooks often carry formatted but empty trailing cells
        while cells and not cells[-1]:
            cells.pop()

        if len(cells) != 2 or cells[0] not in ID_COLUMNS or cells[1] != NAME_COLUMN:
            expected = " or ".join(f"'{c},{NAME_COLUMN}'" for c in ID_COLUMNS)
            raise InputSchemaError(
                f"Invalid header {','.join(cells)!r}: expected {expected}"
            )
        return ID_COLUMNS[cells[0]]

    def _to_row(self, row_num: int, row) -> Optional[InputRow]:
        cells = [self._cell(c) for c in row]
        if not any(cells):
            return None
        return InputRow(
            row_number=row_num,
            identifier=cells[0] if cells else "",
            display_name=cells[1] if len(cells) > 1 else "",
        )

    def validate(self, rows: list[InputRow]) -> ValidationResult:
        """Validate parsed rows.

        Missing and duplicate identifiers are errors. Identifiers are compared
        case-insensitively since both namespaces hold GUIDs.
        """
        errors: list[str] = []
        warnings: list[str] = []
        first_seen: dict[str, int] = {}

        for row in rows:
            if not row.identifier:
                errors.append(f"Row {row.row_number}: device identifier is required")
                continue

            key = row.identifier.lower()
            if key in first_seen:
                errors.append(
                    f"Row {row.row_number}: duplicate device identifier "
                    f"{row.identifier} (first seen on row {first_seen[key]})"
                )
            else:
                first_seen[key] = row.row_number

            if not row.display_name:
                warnings.append(f"Row {row.row_number}: no DeviceName for {row.identifier}")

        if len(rows) > 1000:
            warnings.append(
                f"Large file with {len(rows)} devices. Processing may take a while."
            )

        return ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )
