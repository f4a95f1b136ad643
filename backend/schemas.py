from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from timeutils import as_utc, parse_datetime


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _parse_date_field(value):
    if isinstance(value, str):
        try:
            return parse_datetime(value)
        except ValueError:
            raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD or an ISO datetime")
    return value


def _require_name(value: str) -> str:
    if not value.strip():
        raise ValueError("Name must not be blank")
    return value.strip()


Name = Annotated[str, AfterValidator(_require_name)]
DateInput = Annotated[datetime, BeforeValidator(_parse_date_field), AfterValidator(as_utc)]


# ---------- Company ----------

class CompanyUpdate(APIModel):
    name: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    website: str | None = None


class CompanyResponse(APIModel):
    name: str = ""
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    website: str = ""
    updated_at: datetime | None = None


# ---------- Clients ----------

class ClientCreate(APIModel):
    name: Name
    rate: float = Field(ge=0)
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class ClientUpdate(APIModel):
    name: Name | None = None
    rate: float | None = Field(default=None, ge=0)
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class ClientResponse(APIModel):
    id: int
    name: str
    rate: float
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    created_at: datetime
    updated_at: datetime | None = None


class RateUpdate(APIModel):
    rate: float = Field(gt=0, strict=True)


class RateUpdateResponse(APIModel):
    message: str
    modified_count: int


# ---------- Jobs ----------

class JobCreate(APIModel):
    client_id: int
    name: Name
    job_number: str = ""
    contact_name: str = ""
    contact_email: str = ""


class JobUpdate(APIModel):
    name: Name | None = None
    job_number: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None


class JobResponse(APIModel):
    id: int
    client_id: int
    name: str
    job_number: str = ""
    contact_name: str = ""
    contact_email: str = ""
    created_at: datetime
    updated_at: datetime | None = None


# ---------- Time entries ----------

class TimeEntryCreate(APIModel):
    client_id: int
    job_id: int
    hours: float = Field(ge=0)
    date: DateInput
    description: str = ""


class TimeEntryUpdate(APIModel):
    client_id: int | None = None
    job_id: int | None = None
    hours: float | None = Field(default=None, ge=0)
    date: DateInput | None = None
    description: str | None = None


class TimeEntryResponse(APIModel):
    id: int
    client_id: int
    job_id: int
    hours: float
    date: datetime
    description: str = ""
    created_at: datetime
    updated_at: datetime | None = None
    client: ClientResponse | None = None
    job: JobResponse | None = None


# ---------- Stats ----------

class JobStats(APIModel):
    job_id: int
    name: str
    hours: float
    earnings: float


class ClientStats(APIModel):
    client_id: int
    name: str
    rate: float
    hours: float
    earnings: float
    jobs: list[JobStats]


class StatsResponse(APIModel):
    total_hours: float
    total_earnings: float
    client_count: int
    entry_count: int
    by_client: list[ClientStats]


# ---------- Invoices ----------

class InvoiceCreate(APIModel):
    client_id: int
    job_id: int
    start_date: DateInput
    end_date: DateInput


class InvoiceStatusUpdate(APIModel):
    status: str


class LineItem(APIModel):
    date: datetime
    description: str
    hours: float
    amount: float


class InvoiceResponse(APIModel):
    id: int
    invoice_number: str

    company_name: str = ""
    company_contact_name: str = ""
    company_contact_email: str = ""
    company_contact_phone: str = ""
    company_street: str = ""
    company_city: str = ""
    company_state: str = ""
    company_zip: str = ""
    company_website: str = ""

    client_id: int
    client_name: str
    client_street: str = ""
    client_city: str = ""
    client_state: str = ""
    client_zip: str = ""
    client_rate: float

    job_id: int
    job_name: str
    job_number: str = ""
    contact_name: str = ""
    contact_email: str = ""

    start_date: datetime
    end_date: datetime
    status: str
    line_items: list[LineItem]
    total_hours: float
    total_amount: float
    created_at: datetime
    updated_at: datetime | None = None
    paid_at: datetime | None = None


class MessageResponse(APIModel):
    message: str
