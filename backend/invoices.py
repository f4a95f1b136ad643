"""Invoice generation, sequential numbering and paid/unpaid status changes."""
import logging
import re
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from errors import StoreFailure, ValidationError
from models import Client, Company, Invoice, Job, TimeEntry
from stats import round2
from store import get_or_raise
from timeutils import as_utc, end_of_day, utcnow

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("paid", "unpaid")
DEFAULT_LINE_DESCRIPTION = "Work performed"

# Attempts at inserting with a freshly scanned number before giving up
MAX_NUMBER_ATTEMPTS = 5


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:04d}"


def next_invoice_number(session: Session, year: int) -> str:
    """Return the number following the highest ``INV-<year>-*`` already issued."""
    prefix = f"INV-{year}-"
    numbers = session.exec(
        select(Invoice.invoice_number).where(Invoice.invoice_number.startswith(prefix))
    ).all()

    highest = 0
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    for number in numbers:
        match = pattern.match(number)
        if match:
            highest = max(highest, int(match.group(1)))

    return format_invoice_number(year, highest + 1)


def build_line_items(entries: Iterable[TimeEntry], rate: float) -> tuple[list[dict], float, float]:
    """
    Turn time entries into invoice line items.

    Each amount is rounded on its own; total_amount is the rounded sum of
    those rounded amounts, which can differ from total_hours * rate.

    Returns (line_items, total_hours, total_amount).
    """
    line_items = [
        {
            "date": entry.date.isoformat(),
            "description": entry.description or DEFAULT_LINE_DESCRIPTION,
            "hours": entry.hours,
            "amount": round2(entry.hours * rate),
        }
        for entry in entries
    ]
    total_hours = round2(sum(item["hours"] for item in line_items))
    total_amount = round2(sum(item["amount"] for item in line_items))
    return line_items, total_hours, total_amount


def _snapshot(company: Company, client: Client, job: Job) -> dict:
    return {
        "company_name": company.name or "",
        "company_contact_name": company.contact_name or "",
        "company_contact_email": company.contact_email or "",
        "company_contact_phone": company.contact_phone or "",
        "company_street": company.street or "",
        "company_city": company.city or "",
        "company_state": company.state or "",
        "company_zip": company.zip or "",
        "company_website": company.website or "",
        "client_id": client.id,
        "client_name": client.name,
        "client_street": client.street or "",
        "client_city": client.city or "",
        "client_state": client.state or "",
        "client_zip": client.zip or "",
        "client_rate": client.rate,
        "job_id": job.id,
        "job_name": job.name,
        "job_number": job.job_number or "",
        "contact_name": job.contact_name or "",
        "contact_email": job.contact_email or "",
    }


def create_invoice(
    session: Session,
    client_id: int,
    job_id: int,
    start_date: datetime,
    end_date: datetime,
    now: datetime | None = None,
) -> Invoice:
    """
    Bill a job's time entries between start_date and the end of end_date.

    Raises:
        NotFound: client or job does not exist
        ValidationError: no time entries for the job in the range
        StoreFailure: the invoice could not be inserted
    """
    now = now or utcnow()

    client = get_or_raise(session, Client, client_id, "Client")
    job = get_or_raise(session, Job, job_id, "Job")

    company = session.exec(select(Company)).first() or Company()

    start = as_utc(start_date)
    end = end_of_day(end_date)
    entries = session.exec(
        select(TimeEntry)
        .where(TimeEntry.job_id == job_id)
        .where(TimeEntry.date >= start)
        .where(TimeEntry.date <= end)
        .order_by(TimeEntry.date)
    ).all()

    if not entries:
        raise ValidationError("No time entries found for this job in the specified date range")

    line_items, total_hours, total_amount = build_line_items(entries, client.rate)
    snapshot = _snapshot(company, client, job)

    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        invoice = Invoice(
            invoice_number=next_invoice_number(session, now.year),
            **snapshot,
            start_date=start,
            end_date=end,
            status="unpaid",
            line_items=line_items,
            total_hours=total_hours,
            total_amount=total_amount,
            created_at=now,
            paid_at=None,
        )
        session.add(invoice)
        try:
            session.commit()
        except IntegrityError:
            # Another request took this number between scan and insert
            session.rollback()
            logger.warning(f"Invoice number {invoice.invoice_number} already taken (attempt {attempt})")
            continue
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreFailure(f"Failed to save invoice: {e}") from e

        session.refresh(invoice)
        logger.info(
            f"Created invoice {invoice.invoice_number} for job {job_id}: "
            f"{len(line_items)} items, {total_hours}h, {total_amount:.2f}"
        )
        return invoice

    raise StoreFailure("Could not allocate a unique invoice number")


def set_invoice_status(
    session: Session, invoice_id: int, status: str, now: datetime | None = None
) -> Invoice:
    """Move an invoice between unpaid and paid; paid_at follows the status."""
    if status not in INVOICE_STATUSES:
        raise ValidationError('Status must be "paid" or "unpaid"')

    invoice = get_or_raise(session, Invoice, invoice_id, "Invoice")

    now = now or utcnow()
    invoice.status = status
    invoice.paid_at = now if status == "paid" else None
    invoice.updated_at = now
    session.add(invoice)
    session.commit()
    session.refresh(invoice)

    logger.info(f"Invoice {invoice.invoice_number} marked {status}")
    return invoice
