from datetime import UTC, datetime

import pytest
from sqlmodel import select

import invoices
from errors import NotFound, StoreFailure, ValidationError
from invoices import (
    build_line_items,
    create_invoice,
    format_invoice_number,
    next_invoice_number,
    set_invoice_status,
)
from models import Client, Company, Invoice, Job, TimeEntry

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def billing_data(test_session):
    """A company, one client at 75/h with one job and three entries in January."""
    test_session.add(Company(name="Northwind", city="Portland", state="OR"))
    client = Client(name="Acme Corp", rate=75, street="1 Main St")
    test_session.add(client)
    test_session.commit()

    job = Job(client_id=client.id, name="Website", job_number="PO-7", contact_name="Pat")
    other_job = Job(client_id=client.id, name="Support")
    test_session.add_all([job, other_job])
    test_session.commit()

    test_session.add_all([
        TimeEntry(client_id=client.id, job_id=job.id, hours=2, date=datetime(2024, 1, 20, tzinfo=UTC), description="Build"),
        TimeEntry(client_id=client.id, job_id=job.id, hours=1.5, date=datetime(2024, 1, 5, tzinfo=UTC), description=""),
        TimeEntry(client_id=client.id, job_id=job.id, hours=3, date=datetime(2024, 1, 31, 23, 0, tzinfo=UTC)),
        TimeEntry(client_id=client.id, job_id=job.id, hours=9, date=datetime(2024, 2, 1, 0, 0, 1, tzinfo=UTC)),
        TimeEntry(client_id=client.id, job_id=other_job.id, hours=4, date=datetime(2024, 1, 10, tzinfo=UTC)),
    ])
    test_session.commit()
    return {"client": client, "job": job, "other_job": other_job}


def _invoice_row(number, **overrides):
    fields = dict(
        invoice_number=number,
        client_id=1,
        client_name="Old Client",
        job_id=1,
        job_name="Old Job",
        start_date=datetime(2023, 1, 1, tzinfo=UTC),
        end_date=datetime(2023, 1, 31, tzinfo=UTC),
        created_at=datetime(2023, 2, 1, tzinfo=UTC),
    )
    fields.update(overrides)
    return Invoice(**fields)


def _bill_january(session, data, now=NOW):
    return create_invoice(
        session,
        client_id=data["client"].id,
        job_id=data["job"].id,
        start_date=datetime(2024, 1, 1, tzinfo=UTC),
        end_date=datetime(2024, 1, 31, tzinfo=UTC),
        now=now,
    )


def test_create_invoice_line_items_and_totals(test_session, billing_data):
    """Test line items, totals and the inclusive end date."""
    invoice = _bill_january(test_session, billing_data)

    assert invoice.id is not None
    assert invoice.invoice_number == "INV-2024-0001"
    assert invoice.status == "unpaid"
    assert invoice.paid_at is None
    assert invoice.created_at == NOW

    # Ascending date, only this job, end date inclusive through 23:00
    assert [item["hours"] for item in invoice.line_items] == [1.5, 2, 3]
    assert [item["amount"] for item in invoice.line_items] == [112.5, 150, 225]
    assert invoice.line_items[0]["description"] == "Work performed"
    assert invoice.line_items[1]["description"] == "Build"
    assert invoice.total_hours == 6.5
    assert invoice.total_amount == 487.5
    assert invoice.end_date == datetime(2024, 1, 31, 23, 59, 59, 999000, tzinfo=UTC)


def test_create_invoice_snapshots_company_client_and_job(test_session, billing_data):
    """Test an invoice keeps its snapshot after the client changes."""
    invoice = _bill_january(test_session, billing_data)

    assert invoice.company_name == "Northwind"
    assert invoice.company_city == "Portland"
    assert invoice.client_name == "Acme Corp"
    assert invoice.client_street == "1 Main St"
    assert invoice.client_rate == 75
    assert invoice.job_name == "Website"
    assert invoice.job_number == "PO-7"
    assert invoice.contact_name == "Pat"

    # Later edits to the client do not touch the issued invoice
    client = billing_data["client"]
    client.name = "Renamed"
    client.rate = 500
    test_session.add(client)
    test_session.commit()

    stored = test_session.get(Invoice, invoice.id)
    assert stored.client_name == "Acme Corp"
    assert stored.client_rate == 75
    assert stored.total_amount == 487.5


def test_total_amount_sums_rounded_line_amounts(test_session):
    """1h + 1h at 33.333 bills 33.33 twice (66.66), not 2 * 33.333 (66.67)."""
    client = Client(name="Odd Rate", rate=33.333)
    test_session.add(client)
    test_session.commit()
    job = Job(client_id=client.id, name="Job")
    test_session.add(job)
    test_session.commit()
    test_session.add_all([
        TimeEntry(client_id=client.id, job_id=job.id, hours=1, date=datetime(2024, 1, 2, tzinfo=UTC)),
        TimeEntry(client_id=client.id, job_id=job.id, hours=1, date=datetime(2024, 1, 3, tzinfo=UTC)),
    ])
    test_session.commit()

    invoice = create_invoice(test_session, client.id, job.id, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 31, tzinfo=UTC), now=NOW)

    assert [item["amount"] for item in invoice.line_items] == [33.33, 33.33]
    assert invoice.total_amount == 66.66


def test_build_line_items_empty():
    """Test no entries gives no line items."""
    assert build_line_items([], 50) == ([], 0, 0)


def test_no_billable_work_raises_and_writes_nothing(test_session, billing_data):
    """Test an empty range is rejected without writing."""
    with pytest.raises(ValidationError):
        create_invoice(
            test_session,
            billing_data["client"].id,
            billing_data["job"].id,
            datetime(2023, 6, 1, tzinfo=UTC),
            datetime(2023, 6, 30, tzinfo=UTC),
            now=NOW,
        )

    assert test_session.exec(select(Invoice)).all() == []


def test_missing_client_or_job_raises_not_found(test_session, billing_data):
    """Test missing client or job raises NotFound."""
    with pytest.raises(NotFound, match="Client not found"):
        create_invoice(test_session, 999, billing_data["job"].id, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 31, tzinfo=UTC), now=NOW)
    with pytest.raises(NotFound, match="Job not found"):
        create_invoice(test_session, billing_data["client"].id, 999, datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 31, tzinfo=UTC), now=NOW)

    assert test_session.exec(select(Invoice)).all() == []


def test_invoice_numbers_increase_within_year(test_session, billing_data):
    """Test sequential numbers within a year."""
    numbers = [_bill_january(test_session, billing_data).invoice_number for _ in range(3)]

    assert numbers == ["INV-2024-0001", "INV-2024-0002", "INV-2024-0003"]
    assert len(set(numbers)) == 3


def test_invoice_numbers_restart_each_year(test_session, billing_data):
    """Test numbering restarts each year."""
    test_session.add(_invoice_row("INV-2023-0042"))
    test_session.commit()

    first_2024 = _bill_january(test_session, billing_data)
    first_2025 = _bill_january(test_session, billing_data, now=datetime(2025, 1, 2, tzinfo=UTC))

    assert first_2024.invoice_number == "INV-2024-0001"
    assert first_2025.invoice_number == "INV-2025-0001"


def test_next_invoice_number_uses_numeric_maximum(test_session):
    """Test the next number follows the numeric maximum."""
    test_session.add_all([
        _invoice_row("INV-2024-0009"),
        _invoice_row("INV-2024-0010"),
        _invoice_row("INV-2024-0002"),
        _invoice_row("INV-2024-draft"),
    ])
    test_session.commit()

    assert next_invoice_number(test_session, 2024) == "INV-2024-0011"
    assert next_invoice_number(test_session, 2026) == "INV-2026-0001"


def test_format_invoice_number_pads_to_four_digits():
    """Test zero padding of the sequence."""
    assert format_invoice_number(2024, 7) == "INV-2024-0007"
    assert format_invoice_number(2024, 12345) == "INV-2024-12345"


def test_taken_number_is_retried(test_session, billing_data, monkeypatch):
    """A number grabbed by a concurrent insert is rejected by the unique index and rescanned."""
    test_session.add(_invoice_row("INV-2024-0001"))
    test_session.commit()

    real_next = invoices.next_invoice_number
    calls = []

    def stale_then_real(session, year):
        calls.append(year)
        if len(calls) == 1:
            return "INV-2024-0001"
        return real_next(session, year)

    monkeypatch.setattr(invoices, "next_invoice_number", stale_then_real)

    invoice = _bill_january(test_session, billing_data)

    assert invoice.invoice_number == "INV-2024-0002"
    assert len(calls) == 2
    assert len(test_session.exec(select(Invoice)).all()) == 2


def test_gives_up_after_repeated_collisions(test_session, billing_data, monkeypatch):
    """Test a persistent number collision raises StoreFailure."""
    test_session.add(_invoice_row("INV-2024-0001"))
    test_session.commit()
    monkeypatch.setattr(invoices, "next_invoice_number", lambda session, year: "INV-2024-0001")

    with pytest.raises(StoreFailure):
        _bill_january(test_session, billing_data)

    assert len(test_session.exec(select(Invoice)).all()) == 1


def test_status_toggle_sets_and_clears_paid_at(test_session, billing_data):
    """Test paid_at follows the status."""
    invoice = _bill_january(test_session, billing_data)
    paid_time = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)

    paid = set_invoice_status(test_session, invoice.id, "paid", now=paid_time)
    assert paid.status == "paid"
    assert paid.paid_at == paid_time
    assert paid.updated_at == paid_time

    unpaid = set_invoice_status(test_session, invoice.id, "unpaid", now=datetime(2024, 3, 16, tzinfo=UTC))
    assert unpaid.status == "unpaid"
    assert unpaid.paid_at is None


def test_invalid_status_rejected(test_session, billing_data):
    """Test an unknown status is rejected and nothing changes."""
    invoice = _bill_january(test_session, billing_data)

    with pytest.raises(ValidationError):
        set_invoice_status(test_session, invoice.id, "void", now=NOW)

    assert test_session.get(Invoice, invoice.id).status == "unpaid"


def test_status_on_missing_invoice_raises_not_found(test_session):
    """Test status change on a missing invoice."""
    with pytest.raises(NotFound):
        set_invoice_status(test_session, 12345, "paid", now=NOW)
