from datetime import datetime

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from timeutils import as_utc, utcnow


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always binds and loads as UTC.

    SQLite keeps no offset, so loaded values are re-tagged with UTC; PostgreSQL
    values are converted from the session time zone.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self):
        super().__init__(timezone=True)

    def process_bind_param(self, value, dialect):
        return as_utc(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return as_utc(value) if value is not None else None


class Company(SQLModel, table=True):
    """Singleton profile of the business issuing invoices."""

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    website: str = ""
    updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)


class Client(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    rate: float = 0.0  # Hourly rate
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)


class Job(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    client_id: int = Field(index=True)
    name: str = Field(index=True)
    job_number: str = ""  # PO / job reference shown on invoices
    contact_name: str = ""
    contact_email: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)


class TimeEntry(SQLModel, table=True):
    # client_id / job_id are plain references; existence is checked by the app
    id: int | None = Field(default=None, primary_key=True)
    client_id: int = Field(index=True)
    job_id: int = Field(index=True)
    hours: float = 0.0
    date: datetime = Field(index=True, sa_type=UTCDateTime)
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)


class Invoice(SQLModel, table=True):
    """Snapshot of billable work for one job over a date range.

    Company, client and job fields are copied at creation time so later
    edits to those records never change an issued invoice.
    """

    id: int | None = Field(default=None, primary_key=True)
    invoice_number: str = Field(index=True, unique=True)  # INV-<year>-NNNN

    # Company (from)
    company_name: str = ""
    company_contact_name: str = ""
    company_contact_email: str = ""
    company_contact_phone: str = ""
    company_street: str = ""
    company_city: str = ""
    company_state: str = ""
    company_zip: str = ""
    company_website: str = ""

    # Client (bill to)
    client_id: int = Field(index=True)
    client_name: str
    client_street: str = ""
    client_city: str = ""
    client_state: str = ""
    client_zip: str = ""
    client_rate: float = 0.0

    # Job
    job_id: int = Field(index=True)
    job_name: str
    job_number: str = ""
    contact_name: str = ""
    contact_email: str = ""

    start_date: datetime = Field(sa_type=UTCDateTime)
    end_date: datetime = Field(sa_type=UTCDateTime)
    status: str = Field(default="unpaid", index=True)
    line_items: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    total_hours: float = 0.0
    total_amount: float = 0.0
    created_at: datetime = Field(default_factory=utcnow, index=True, sa_type=UTCDateTime)
    updated_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    paid_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
