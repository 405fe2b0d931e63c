"""Tests for the XLSX importer of built-in bookkeeping, CRM and calendar records."""
from __future__ import annotations

import json
from datetime import datetime

import openpyxl
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from trademate.importer import import_records_xlsx
from trademate.models import Appointment, Base, BusinessMetric, CrmContact


@pytest.fixture()
def session():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    sess = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def workbook_path(tmp_path):
    wb = openpyxl.Workbook()
    txns = wb.active
    txns.title = "Transactions"
    txns.append(["Date", "Type", "Amount", "Description"])
    txns.append([datetime(2024, 5, 2), "Income", 1200, "Kitchen remodel"])
    txns.append(["2024-05-03", "expense", "$350.50", "Lumber"])
    txns.append([datetime(2024, 5, 4), "refund", 99, "Unknown type"])
    txns.append([datetime(2024, 5, 5), "income", "n/a", "Bad amount"])

    contacts = wb.create_sheet("Contacts")
    contacts.append(["Name", "Email", "Phone", "Status"])
    contacts.append(["Ann Smith", "ann@example.com", "555-0101", "Won"])
    contacts.append(["Bob Jones", "", "", "maybe"])
    contacts.append([None, "ghost@example.com", None, "new"])

    appts = wb.create_sheet("Appointments")
    appts.append(["Scheduled_At", "Status"])
    appts.append([datetime(2024, 5, 6, 9, 30), "confirmed"])
    appts.append(["not a date", "scheduled"])

    wb.create_sheet("Notes").append(["ignored"])

    path = tmp_path / "records.xlsx"
    wb.save(path)
    return path


class TestImportRecords:
    def test_counts(self, session, workbook_path):
        result = import_records_xlsx(workbook_path, session, "u1")
        assert result.transactions == 2
        assert result.contacts == 2
        assert result.appointments == 1
        assert result.skipped_rows == 4

    def test_transactions_stored_as_metrics(self, session, workbook_path):
        import_records_xlsx(workbook_path, session, "u1")
        txns = session.execute(
            select(BusinessMetric).where(BusinessMetric.user_id == "u1").order_by(BusinessMetric.id)
        ).scalars().all()
        assert [t.metric_type for t in txns] == ["transaction", "transaction"]
        assert [json.loads(t.context_json)["type"] for t in txns] == ["income", "expense"]
        assert txns[1].value == pytest.approx(350.5)
        assert txns[1].recorded_at == datetime(2024, 5, 3)

    def test_contact_status_normalized(self, session, workbook_path):
        import_records_xlsx(workbook_path, session, "u1")
        contacts = session.execute(select(CrmContact).order_by(CrmContact.id)).scalars().all()
        assert [(c.name, c.status) for c in contacts] == [("Ann Smith", "won"), ("Bob Jones", "new")]
        assert contacts[0].email == "ann@example.com"

    def test_appointments(self, session, workbook_path):
        import_records_xlsx(workbook_path, session, "u1")
        appt = session.execute(select(Appointment)).scalars().one()
        assert appt.user_id == "u1"
        assert appt.scheduled_at == datetime(2024, 5, 6, 9, 30)
        assert appt.status == "confirmed"

    def test_missing_sheets(self, session, tmp_path):
        wb = openpyxl.Workbook()
        wb.active.title = "Summary"
        path = tmp_path / "empty.xlsx"
        wb.save(path)
        result = import_records_xlsx(path, session, "u1")
        assert (result.transactions, result.contacts, result.appointments) == (0, 0, 0)

    def test_rows_from_every_matching_sheet_are_kept(self, session, tmp_path):
        wb = openpyxl.Workbook()
        may = wb.active
        may.title = "Transactions May"
        may.append(["Date", "Type", "Amount"])
        may.append([datetime(2024, 5, 2), "income", 100])
        june = wb.create_sheet("Transactions June")
        june.append(["Date", "Type", "Amount"])
        june.append([datetime(2024, 6, 2), "expense", 40])
        june.append([datetime(2024, 6, 3), "refund", 5])
        path = tmp_path / "two_months.xlsx"
        wb.save(path)

        result = import_records_xlsx(path, session, "u1")
        assert result.transactions == 2
        assert result.skipped_rows == 1
        values = session.execute(select(BusinessMetric.value).order_by(BusinessMetric.id)).scalars().all()
        assert values == [100, 40]
