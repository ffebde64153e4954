"""
Inventory import from Excel/CSV.
Parses the file with pandas, validates each row with detailed issues,
then creates or updates InventoryItem rows.
"""
import pandas as pd
from io import BytesIO, StringIO
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from yarn_erp.extensions import db
from yarn_erp.models.inventory import InventoryItem, INVENTORY_STATUSES


class ErrorSeverity(Enum):
    """Severity of an import issue."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ImportIssue:
    """One problem found while importing."""
    row: int
    column: Optional[str]
    message: str
    severity: ErrorSeverity
    original_value: Any = None

    def to_dict(self) -> dict:
        return {
            'row': self.row,
            'column': self.column,
            'message': self.message,
            'severity': self.severity.value,
            'originalValue': str(self.original_value) if self.original_value is not None else None
        }


@dataclass
class ValidationResult:
    """Outcome of parsing and validating a file."""
    is_valid: bool = True
    total_rows: int = 0
    valid_rows: int = 0
    rows_with_errors: int = 0
    rows_with_warnings: int = 0
    errors: List[ImportIssue] = field(default_factory=list)
    warnings: List[ImportIssue] = field(default_factory=list)
    preview: List[dict] = field(default_factory=list)
    detected_columns: List[str] = field(default_factory=list)
    missing_columns: List[str] = field(default_factory=list)
    file_format: str = ""

    def to_dict(self) -> dict:
        return {
            'isValid': self.is_valid,
            'totalRows': self.total_rows,
            'validRows': self.valid_rows,
            'rowsWithErrors': self.rows_with_errors,
            'rowsWithWarnings': self.rows_with_warnings,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
            'preview': self.preview,
            'detectedColumns': self.detected_columns,
            'missingColumns': self.missing_columns,
            'fileFormat': self.file_format
        }


class InventoryImportService:
    """Imports inventory items from Excel/CSV."""

    SUPPORTED_FORMATS = {
        'excel': ['.xlsx', '.xls'],
        'csv': ['.csv']
    }

    CSV_ENCODINGS = ['utf-8', 'latin-1', 'cp1252', 'iso-8859-1']

    CSV_DELIMITERS = [',', ';', '\t', '|']

    # File column -> InventoryItem attribute
    COLUMN_MAPPING = {
        'Product Name': 'product_name',
        'Raw Material': 'raw_material',
        'Category': 'category',
        'Effective Yarn': 'effective_yarn',
        'Count': 'count',
        'Units Produced': 'units_produced',
        'Initial Quantity': 'initial_quantity',
        'Current Quantity': 'current_quantity',
        'GSM': 'gsm',
        'Cost Per Kg': 'cost_per_kg',
        'Location': 'location',
        'Warehouse Location': 'warehouse_location',
        'Batch Number': 'batch_number',
        'Supplier Name': 'supplier_name',
        'Remarks': 'remarks',
        'Status': 'status'
    }

    REQUIRED_COLUMNS = ['Product Name', 'Raw Material', 'Effective Yarn', 'Count', 'Initial Quantity']

    FLOAT_COLUMNS = {'Effective Yarn', 'Initial Quantity', 'Current Quantity', 'GSM', 'Cost Per Kg'}
    INT_COLUMNS = {'Units Produced'}

    PREVIEW_ROWS = 10

    def detect_format(self, filename: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Detects the file format from its extension.
        Returns: (format, extension) or (None, None) when unsupported
        """
        filename_lower = (filename or '').lower()
        for fmt, extensions in self.SUPPORTED_FORMATS.items():
            for ext in extensions:
                if filename_lower.endswith(ext):
                    return fmt, ext
        return None, None

    def parse_file(self, file_bytes: bytes, filename: str) -> Tuple[Optional[pd.DataFrame], ValidationResult]:
        """
        Parses an Excel or CSV file and checks its columns.

        Returns:
            Tuple of (DataFrame or None, ValidationResult)
        """
        result = ValidationResult()

        fmt, _ = self.detect_format(filename)
        if not fmt:
            valid = [ext for exts in self.SUPPORTED_FORMATS.values() for ext in exts]
            result.is_valid = False
            result.errors.append(ImportIssue(
                row=0,
                column=None,
                message=f"Unsupported file format. Use: {', '.join(valid)}",
                severity=ErrorSeverity.CRITICAL
            ))
            return None, result

        result.file_format = fmt

        if fmt == 'excel':
            df = self._parse_excel(file_bytes, result)
        else:
            df = self._parse_csv(file_bytes, result)

        if df is None:
            result.is_valid = False
            return None, result

        df.columns = [self._normalize_column(col) for col in df.columns]
        result.detected_columns = df.columns.tolist()

        for required in self.REQUIRED_COLUMNS:
            if self._normalize_column(required) not in df.columns:
                result.missing_columns.append(required)

        if result.missing_columns:
            result.is_valid = False
            result.errors.append(ImportIssue(
                row=0,
                column=None,
                message=f"Required columns not found: {', '.join(result.missing_columns)}",
                severity=ErrorSeverity.CRITICAL
            ))
            return df, result

        total = len(df)
        df = df.dropna(how='all')
        empty_rows = total - len(df)
        if empty_rows > 0:
            result.warnings.append(ImportIssue(
                row=0,
                column=None,
                message=f"Ignored {empty_rows} completely empty rows",
                severity=ErrorSeverity.INFO
            ))

        result.total_rows = len(df)
        return df, result

    def _parse_excel(self, file_bytes: bytes, result: ValidationResult) -> Optional[pd.DataFrame]:
        try:
            return pd.read_excel(BytesIO(file_bytes))
        except Exception as e:
            result.errors.append(ImportIssue(
                row=0,
                column=None,
                message=f"Error reading Excel: {str(e)}. Is the file corrupt or protected?",
                severity=ErrorSeverity.CRITICAL
            ))
            return None

    def _parse_csv(self, file_bytes: bytes, result: ValidationResult) -> Optional[pd.DataFrame]:
        """Tries several encodings and delimiters."""
        for encoding in self.CSV_ENCODINGS:
            try:
                content = file_bytes.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        else:
            result.errors.append(ImportIssue(
                row=0,
                column=None,
                message="Could not detect the file encoding. Save it as UTF-8.",
                severity=ErrorSeverity.CRITICAL
            ))
            return None

        for delimiter in self.CSV_DELIMITERS:
            try:
                df = pd.read_csv(StringIO(content), delimiter=delimiter)
            except Exception:
                continue
            if len(df.columns) > 1:
                return df

        result.errors.append(ImportIssue(
            row=0,
            column=None,
            message="Could not read the CSV: no known delimiter produced several columns.",
            severity=ErrorSeverity.CRITICAL
        ))
        return None

    def _normalize_column(self, col) -> str:
        """Strip and uppercase column names."""
        return str(col).strip().upper()

    def _get_str(self, row, column: str) -> Optional[str]:
        key = self._normalize_column(column)
        if key not in row.index:
            return None
        val = row[key]
        if pd.isna(val) or str(val).strip().lower() == 'nan':
            return None
        return str(val).strip()

    def _get_float(self, row, column: str) -> Optional[float]:
        val_str = self._get_str(row, column)
        if not val_str:
            return None
        # Accept comma decimals
        return float(val_str.replace(',', '.'))

    def _row_values(self, row) -> Dict[str, Any]:
        """Converts a DataFrame row into model attributes. Raises ValueError on bad numbers."""
        values = {}
        for column, attr in self.COLUMN_MAPPING.items():
            if column in self.FLOAT_COLUMNS:
                values[attr] = self._get_float(row, column)
            elif column in self.INT_COLUMNS:
                number = self._get_float(row, column)
                values[attr] = int(number) if number is not None else None
            else:
                values[attr] = self._get_str(row, column)
        return values

    def validate(self, df: pd.DataFrame, result: ValidationResult) -> Tuple[List[Dict[str, Any]], ValidationResult]:
        """
        Validates every row.

        Returns:
            Tuple of (list of valid row values, ValidationResult)
        """
        valid_rows = []

        for position, (_, row) in enumerate(df.iterrows(), start=2):  # row 1 is the header
            row_errors = []
            row_warnings = []

            try:
                values = self._row_values(row)
            except ValueError as e:
                row_errors.append(ImportIssue(position, None, f"Invalid number: {e}", ErrorSeverity.ERROR))
                values = None

            if values is not None:
                for column in self.REQUIRED_COLUMNS:
                    if values[self.COLUMN_MAPPING[column]] in (None, ''):
                        row_errors.append(ImportIssue(position, column, f"{column} is required", ErrorSeverity.ERROR))

                for column in ('Initial Quantity', 'Current Quantity', 'Cost Per Kg'):
                    value = values[self.COLUMN_MAPPING[column]]
                    if value is not None and value < 0:
                        row_errors.append(ImportIssue(position, column, f"{column} cannot be negative",
                                                      ErrorSeverity.ERROR, value))

                status = values.get('status')
                if status and status not in INVENTORY_STATUSES:
                    row_warnings.append(ImportIssue(position, 'Status', f"Unknown status '{status}', using 'Available'",
                                                    ErrorSeverity.WARNING, status))
                    values['status'] = None

            if row_errors:
                result.errors.extend(row_errors)
                result.rows_with_errors += 1
                continue

            if row_warnings:
                result.warnings.extend(row_warnings)
                result.rows_with_warnings += 1

            valid_rows.append(values)
            if len(result.preview) < self.PREVIEW_ROWS:
                result.preview.append({k: v for k, v in values.items() if v is not None})

        result.valid_rows = len(valid_rows)
        if result.rows_with_errors:
            result.is_valid = False
        return valid_rows, result

    def _find_existing(self, values: Dict[str, Any]) -> Optional[InventoryItem]:
        if values.get('batch_number'):
            return InventoryItem.query.filter_by(batch_number=values['batch_number']).first()
        return InventoryItem.query.filter_by(product_name=values['product_name'], count=values['count']).first()

    def execute(self, valid_rows: List[Dict[str, Any]]) -> dict:
        """
        Creates or updates inventory items.
        Matches on batch_number, otherwise on (product_name, count). Does not commit.
        """
        summary = {'created': 0, 'updated': 0}

        for values in valid_rows:
            fields = {k: v for k, v in values.items() if v is not None}
            item = self._find_existing(values)

            if item is None:
                item = InventoryItem(**fields)
                if item.current_quantity is None:
                    item.current_quantity = item.initial_quantity
                db.session.add(item)
                summary['created'] += 1
            else:
                for attr, value in fields.items():
                    setattr(item, attr, value)
                summary['updated'] += 1

            item.recalculate()
            # Flush so later rows of the same file match this one
            db.session.flush()

        return summary
