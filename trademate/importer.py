from __future__ import annotations

import json
import logging
from datetime import UTC, date, datetime
from pathlib import Path

import openpyxl
from sqlalchemy.orm import Session

from trademate.models import Appointment, BusinessMetric, CrmContact
from trademate.schemas import ImportResult

log = logging.getLogger(__name__)

TRANSACTION_TYPES = ("income", "expense")
CONTACT_STATUSES = ("new", "contacted", "qualified", "won", "lost")


def _s(value: object) -> str:
    """Safely coerce cell value to stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def _col(row: tuple, idx: int | None) -> object:
    """Safely get a column value from a row tuple."""
    if idx is None:
        return None
    return row[idx] if idx < len(row) else None


def _f(value: object) -> float | None:
    """Safely coerce cell value to float, None if missing."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).replace(",", "").replace("$", "")) if isinstance(value, str) else float(value)
    except (ValueError, TypeError):
        return None


def _dt(value: object) -> datetime | None:
    """Coerce a date cell (native or ISO text) to a naive datetime."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = _s(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        return None


def _header_map(ws) -> dict[str, int]:
    """Map lower-cased header names to column indices."""
    header = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
    return {_s(name).casefold(): idx for idx, name in enumerate(header) if _s(name)}


# ---------------------------------------------------------------------------
# Sheet parsers
# ---------------------------------------------------------------------------


def _parse_transactions(ws) -> tuple[list[dict], int]:
    cols = _header_map(ws)
    out: list[dict] = []
    skipped = 0
    for row in ws.iter_rows(min_row=2, values_only=True):
        if not row or all(v is None for v in row):
            continue
        kind = _s(_col(row, cols.get("type"))).casefold()
        amount = _f(_col(row, cols.get("amount")))
        if kind not in TRANSACTION_TYPES or amount is None:
            skipped += 1
            continue
        out.append({
            "metric_type": "transaction",
            "value": abs(amount),
            "context_json": json.dumps({
                "type": kind, "description": _s(_col(row, cols.get("description"))),
            }),
            "recorded_at": _dt(_col(row, cols.get("date"))) or datetime.now(UTC).replace(tzinfo=None),
        })
    return out, skipped


def _parse_contacts(ws) -> tuple[list[dict], int]:
    cols = _header_map(ws)
    out: list[dict] = []
    skipped = 0
    for row in ws.iter_rows(min_row=2, values_only=True):
        if not row or all(v is None for v in row):
            continue
        name = _s(_col(row, cols.get("name")))
        if not name:
            skipped += 1
            continue
        status = _s(_col(row, cols.get("status"))).casefold()
        out.append({
            "name": name,
            "email": _s(_col(row, cols.get("email"))),
            "phone": _s(_col(row, cols.get("phone"))),
            "status": status if status in CONTACT_STATUSES else "new",
        })
    return out, skipped


def _parse_appointments(ws) -> tuple[list[dict], int]:
    cols = _header_map(ws)
    out: list[dict] = []
    skipped = 0
    for row in ws.iter_rows(min_row=2, values_only=True):
        if not row or all(v is None for v in row):
            continue
        scheduled = _dt(_col(row, cols.get("scheduled_at")))
        if scheduled is None:
            skipped += 1
            continue
        out.append({
            "scheduled_at": scheduled,
            "status": _s(_col(row, cols.get("status"))).casefold() or "scheduled",
        })
    return out, skipped


def import_records_xlsx(file_path: str | Path, session: Session, user_id: str) -> ImportResult:
    """Import built-in bookkeeping, CRM and calendar records for one user.

    Recognized sheets (by name, case-insensitive): ``Transactions``,
    ``Contacts`` and ``Appointments``. Rows missing a required value are
    skipped and counted.
    """
    file_path = Path(file_path)
    wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)

    transactions: list[dict] = []
    contacts: list[dict] = []
    appointments: list[dict] = []
    skipped = 0
    for sheet_name in wb.sheetnames:
        ws = wb[sheet_name]
        lower = sheet_name.casefold()
        if lower.startswith("transaction"):
            rows, n = _parse_transactions(ws)
            transactions.extend(rows)
        elif lower.startswith("contact"):
            rows, n = _parse_contacts(ws)
            contacts.extend(rows)
        elif lower.startswith("appointment"):
            rows, n = _parse_appointments(ws)
            appointments.extend(rows)
        else:
            continue
        skipped += n

    wb.close()

    session.add_all(BusinessMetric(user_id=user_id, **data) for data in transactions)
    session.add_all(CrmContact(user_id=user_id, **data) for data in contacts)
    session.add_all(Appointment(user_id=user_id, **data) for data in appointments)
    session.commit()

    if skipped:
        log.warning("Import for user %s skipped %d incomplete rows", user_id, skipped)
    return ImportResult(
        transactions=len(transactions),
        contacts=len(contacts),
        appointments=len(appointments),
        skipped_rows=skipped,
    )
