"""
XY CRM - Lecture / écriture de classeurs xlsx (openpyxl)
"""

import io
import logging
from typing import Any, Dict, List, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

logger = logging.getLogger("spreadsheet")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 50


class SpreadsheetError(ValueError):
    """Fichier illisible ou sans ligne d'en-tête"""


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return value.get("name", "")
    return value


def build_workbook(sheet_title: str, headers: Sequence[str], rows: List[Sequence[Any]]) -> bytes:
    """
    Classeur à une feuille: en-tête en gras, largeur de colonne ajustée au contenu.
    Returns: contenu xlsx en bytes
    """
    wb = Workbook()
    ws = wb.active
    # openpyxl limite le titre d'une feuille à 31 caractères
    ws.title = sheet_title[:31]
    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for row in rows:
        ws.append([_cell_value(v) for v in row])

    for index, header in enumerate(headers, start=1):
        longest = max(
            [len(str(header))] + [len(str(_cell_value(r[index - 1]))) for r in rows if len(r) >= index]
        )
        width = min(max(longest + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)
        ws.column_dimensions[get_column_letter(index)].width = width

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def read_rows(content: bytes) -> List[Tuple[int, Dict[str, Any]]]:
    """
    Lit la première feuille: la ligne 1 donne les noms de colonnes,
    chaque ligne suivante devient (numéro de ligne de données, {en-tête: valeur}).
    Les lignes entièrement vides sont ignorées mais comptées.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"[SPREADSHEET] Unreadable workbook: {e}")
        raise SpreadsheetError("Invalid xlsx file") from e

    ws = wb.active
    rows = ws.iter_rows(values_only=True)
    header_row = next(rows, None)
    if not header_row or not any(header_row):
        wb.close()
        raise SpreadsheetError("The file has no header row")

    headers = [str(h).strip() if h is not None else "" for h in header_row]
    records = []
    for row_number, raw in enumerate(rows, start=1):
        if raw is None or all(v is None or (isinstance(v, str) and not v.strip()) for v in raw):
            continue
        record = {}
        for header, value in zip(headers, raw):
            if header:
                record[header] = _normalize(value)
        records.append((row_number, record))

    wb.close()
    return records


def attachment_headers(filename: str) -> Dict[str, str]:
    return {"Content-Disposition": f"attachment; filename={filename}"}
