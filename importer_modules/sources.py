"""
Input file readers for Vendure Catalog Importer.

Every supported format ends up as a list of RawProductRow.
"""

import os
import csv
import json
import logging
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .models import RawProductRow


class InputFileError(Exception):
    """The input file is missing, unreadable or of an unsupported type."""


def _read_csv(path):
    with open(path, 'r', encoding='utf-8-sig', newline='') as f:
        reader = csv.DictReader(f)
        return [dict(record) for record in reader]


def _read_xlsx(path):
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        columns = [str(c).strip() if c is not None else "" for c in header]

        records = []
        for values in rows:
            if values is None or all(v is None or v == "" for v in values):
                continue
            record = {}
            for column, value in zip(columns, values):
                if column:
                    record[column] = "" if value is None else value
            records.append(record)
        return records
    finally:
        workbook.close()


def _read_json(path):
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("products", [])
    if not isinstance(data, list):
        raise InputFileError(f"Expected a list of products in {path}")
    return [record for record in data if isinstance(record, dict)]


READERS = {
    ".csv": _read_csv,
    ".xlsx": _read_xlsx,
    ".json": _read_json,
}


def read_records(path):
    """
    Read raw records (dictionaries) from a CSV, XLSX or JSON file.

    Raises:
        InputFileError: missing file, unsupported extension or unreadable content
    """
    if not path or not os.path.exists(path):
        raise InputFileError(f"Input file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    reader = READERS.get(ext)
    if reader is None:
        raise InputFileError(f"Unsupported input file type '{ext}' (use .csv, .xlsx or .json)")

    try:
        return reader(path)
    except InputFileError:
        raise
    except (OSError, ValueError, csv.Error, zipfile.BadZipFile, InvalidFileException) as e:
        raise InputFileError(f"Could not read {path}: {e}") from e


def read_rows(path):
    """
    Read an input file into RawProductRow objects.

    Args:
        path: Path to a .csv, .xlsx or .json file

    Returns:
        List of RawProductRow, in file order
    """
    records = read_records(path)
    rows = [RawProductRow.from_record(record) for record in records]
    logging.info(f"Read {len(rows)} row(s) from {os.path.basename(path)}")
    return rows
