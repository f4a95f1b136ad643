import base64
import binascii
import logging
import os
import secrets
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select
from starlette.exceptions import HTTPException as StarletteHTTPException

from db import create_db_and_tables, engine, get_session
from errors import TimeTrackerError, ValidationError
from invoice_html import render_invoice_html
from invoices import create_invoice, set_invoice_status
from models import Client, Company, Invoice, Job, TimeEntry
from schemas import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    CompanyResponse,
    CompanyUpdate,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceStatusUpdate,
    JobCreate,
    JobResponse,
    JobUpdate,
    MessageResponse,
    RateUpdate,
    RateUpdateResponse,
    StatsResponse,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
)
from stats import dashboard_stats
from store import delete_client, delete_job, get_or_raise
from timeutils import parse_datetime, utcnow

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_clock():
    """Source of "now" for timestamps and invoice years; overridden in tests."""
    return utcnow


AUTH_CHALLENGE = {"WWW-Authenticate": 'Basic realm="Time Tracker"'}


def _decode_basic(param: str) -> tuple[str, str] | None:
    """Split a Basic credential into (user, password); None when it is not valid base64 UTF-8."""
    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, _, password = decoded.partition(":")
    return user, password


def require_basic_auth(authorization: str = Header("")):
    """HTTP Basic auth, active only when AUTH_USER and AUTH_PASS are both set.

    The header is not looked at otherwise, so a malformed one is harmless in
    local development.
    """
    auth_user = os.getenv("AUTH_USER")
    auth_pass = os.getenv("AUTH_PASS")
    if not auth_user or not auth_pass:
        return

    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "basic" or not param.strip():
        raise HTTPException(status_code=401, detail="Authentication required", headers=AUTH_CHALLENGE)

    credentials = _decode_basic(param.strip())
    if credentials is None:
        raise HTTPException(status_code=401, detail="Invalid credentials", headers=AUTH_CHALLENGE)

    user_ok = secrets.compare_digest(credentials[0].encode(), auth_user.encode())
    pass_ok = secrets.compare_digest(credentials[1].encode(), auth_pass.encode())
    if not (user_ok and pass_ok):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers=AUTH_CHALLENGE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    try:
        from migrations.migrate_001_invoice_number_index import migrate as migrate_001

        migrate_001(engine)
    except Exception as e:
        logger.warning(f"Migration 001 check failed (may already be applied): {str(e)}")

    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(
    title="Time Tracker API",
    version="1.0.0",
    lifespan=lifespan,
    dependencies=[Depends(require_basic_auth)],
)

cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error handling ----------

@app.exception_handler(TimeTrackerError)
async def domain_error_handler(request: Request, exc: TimeTrackerError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"][1:])
        messages.append(f"{location}: {err['msg']}" if location else err["msg"])
    logger.warning(f"{request.method} {request.url.path} -> 400: {messages}")
    return JSONResponse(status_code=400, content={"error": "; ".join(messages)})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


def _parse_date_param(value: str | None, name: str):
    if not value:
        return None
    try:
        return parse_datetime(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name} '{value}'. Use YYYY-MM-DD") from e


# ---------- Company ----------

@app.get("/api/company", response_model=CompanyResponse)
def get_company(session: Session = Depends(get_session)):
    """Get company info (blank profile if none saved yet)."""
    company = session.exec(select(Company)).first()
    if not company:
        return CompanyResponse()
    return CompanyResponse.model_validate(company)


@app.put("/api/company", response_model=CompanyResponse)
def update_company(
    payload: CompanyUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    """Upsert the company profile; omitted fields are saved blank."""
    logger.info("Company profile update")
    company = session.exec(select(Company)).first() or Company()
    company.sqlmodel_update({k: v or "" for k, v in payload.model_dump().items()})
    company.updated_at = clock()
    session.add(company)
    session.commit()
    session.refresh(company)
    return CompanyResponse.model_validate(company)


# ---------- Clients ----------

@app.get("/api/clients", response_model=list[ClientResponse])
def list_clients(session: Session = Depends(get_session)):
    clients = session.exec(select(Client).order_by(Client.name)).all()
    return [ClientResponse.model_validate(c) for c in clients]


@app.post("/api/clients", response_model=ClientResponse, status_code=201)
def create_client(
    payload: ClientCreate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Create client request: {payload.name}")
    client = Client(**payload.model_dump(), created_at=clock())
    session.add(client)
    session.commit()
    session.refresh(client)
    return ClientResponse.model_validate(client)


@app.put("/api/clients/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: int,
    payload: ClientUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    """Partial update: only fields present in the body are changed."""
    logger.info(f"Update client request for ID: {client_id}")
    client = get_or_raise(session, Client, client_id, "Client")
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    client.sqlmodel_update(updates)
    client.updated_at = clock()
    session.add(client)
    session.commit()
    session.refresh(client)
    return ClientResponse.model_validate(client)


@app.delete("/api/clients/{client_id}", response_model=MessageResponse)
def remove_client(client_id: int, session: Session = Depends(get_session)):
    """Delete a client together with its jobs and time entries."""
    logger.info(f"Delete client request for ID: {client_id}")
    delete_client(session, client_id)
    return MessageResponse(message="Client and associated data deleted")


# ---------- Jobs ----------

@app.get("/api/jobs", response_model=list[JobResponse])
def list_jobs(
    client_id: int = Query(None, alias="clientId", description="Only jobs for this client"),
    session: Session = Depends(get_session),
):
    stmt = select(Job)
    if client_id is not None:
        stmt = stmt.where(Job.client_id == client_id)
    jobs = session.exec(stmt.order_by(Job.name)).all()
    return [JobResponse.model_validate(j) for j in jobs]


@app.post("/api/jobs", response_model=JobResponse, status_code=201)
def create_job(
    payload: JobCreate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Create job request: {payload.name} for client {payload.client_id}")
    get_or_raise(session, Client, payload.client_id, "Client")
    job = Job(**payload.model_dump(), created_at=clock())
    session.add(job)
    session.commit()
    session.refresh(job)
    return JobResponse.model_validate(job)


@app.put("/api/jobs/{job_id}", response_model=JobResponse)
def update_job(
    job_id: int,
    payload: JobUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Update job request for ID: {job_id}")
    job = get_or_raise(session, Job, job_id, "Job")
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    job.sqlmodel_update(updates)
    job.updated_at = clock()
    session.add(job)
    session.commit()
    session.refresh(job)
    return JobResponse.model_validate(job)


@app.delete("/api/jobs/{job_id}", response_model=MessageResponse)
def remove_job(job_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete job request for ID: {job_id}")
    delete_job(session, job_id)
    return MessageResponse(message="Job and associated time entries deleted")


# ---------- Time entries ----------

@app.get("/api/time-entries", response_model=list[TimeEntryResponse])
def list_time_entries(session: Session = Depends(get_session)):
    """All time entries, newest first, with their client and job attached."""
    entries = session.exec(
        select(TimeEntry).order_by(TimeEntry.date.desc(), TimeEntry.created_at.desc())
    ).all()
    client_map = {c.id: c for c in session.exec(select(Client)).all()}
    job_map = {j.id: j for j in session.exec(select(Job)).all()}

    results = []
    for entry in entries:
        row = TimeEntryResponse.model_validate(entry)
        client = client_map.get(entry.client_id)
        job = job_map.get(entry.job_id)
        row.client = ClientResponse.model_validate(client) if client else None
        row.job = JobResponse.model_validate(job) if job else None
        results.append(row)
    return results


@app.post("/api/time-entries", response_model=TimeEntryResponse, status_code=201)
def create_time_entry(
    payload: TimeEntryCreate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Create time entry: {payload.hours}h on job {payload.job_id} ({payload.date:%Y-%m-%d})")
    get_or_raise(session, Client, payload.client_id, "Client")
    get_or_raise(session, Job, payload.job_id, "Job")
    entry = TimeEntry(**payload.model_dump(), created_at=clock())
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return TimeEntryResponse.model_validate(entry)


@app.put("/api/time-entries/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry(
    entry_id: int,
    payload: TimeEntryUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Update time entry request for ID: {entry_id}")
    entry = get_or_raise(session, TimeEntry, entry_id, "Time entry")
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "client_id" in updates:
        get_or_raise(session, Client, updates["client_id"], "Client")
    if "job_id" in updates:
        get_or_raise(session, Job, updates["job_id"], "Job")
    entry.sqlmodel_update(updates)
    entry.updated_at = clock()
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return TimeEntryResponse.model_validate(entry)


@app.delete("/api/time-entries/{entry_id}", response_model=MessageResponse)
def delete_time_entry(entry_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete time entry request for ID: {entry_id}")
    entry = get_or_raise(session, TimeEntry, entry_id, "Time entry")
    session.delete(entry)
    session.commit()
    return MessageResponse(message="Time entry deleted")


# ---------- Dashboard ----------

@app.get("/api/stats", response_model=StatsResponse)
def get_stats(
    start_date: str = Query(None, alias="startDate", description="Start date filter (YYYY-MM-DD)"),
    end_date: str = Query(None, alias="endDate", description="End date filter, inclusive (YYYY-MM-DD)"),
    session: Session = Depends(get_session),
):
    """Hours and earnings totals with per-client and per-job breakdowns."""
    logger.info(f"Stats request - from: {start_date}, to: {end_date}")
    stats = dashboard_stats(
        session,
        start_date=_parse_date_param(start_date, "startDate"),
        end_date=_parse_date_param(end_date, "endDate"),
    )
    return StatsResponse.model_validate(stats)


# ---------- Admin ----------

@app.post("/api/admin/update-rates", response_model=RateUpdateResponse)
def update_all_rates(
    payload: RateUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    """Set every client's hourly rate to the same value."""
    logger.info(f"Bulk rate update to {payload.rate}")
    modified = 0
    now = clock()
    for client in session.exec(select(Client)).all():
        if client.rate != payload.rate:
            client.rate = payload.rate
            client.updated_at = now
            session.add(client)
            modified += 1
    session.commit()

    logger.info(f"Updated {modified} client rates")
    return RateUpdateResponse(
        message=f"Updated {modified} clients to ${payload.rate:g}/hour",
        modified_count=modified,
    )


# ---------- Invoices ----------

@app.get("/api/invoices", response_model=list[InvoiceResponse])
def list_invoices(
    status: str = Query(None, description="paid or unpaid"),
    client_id: int = Query(None, alias="clientId"),
    job_id: int = Query(None, alias="jobId"),
    session: Session = Depends(get_session),
):
    stmt = select(Invoice)
    if status:
        stmt = stmt.where(Invoice.status == status)
    if client_id is not None:
        stmt = stmt.where(Invoice.client_id == client_id)
    if job_id is not None:
        stmt = stmt.where(Invoice.job_id == job_id)
    invoices = session.exec(stmt.order_by(Invoice.created_at.desc(), Invoice.id.desc())).all()
    return [InvoiceResponse.model_validate(i) for i in invoices]


@app.get("/api/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: int, session: Session = Depends(get_session)):
    invoice = get_or_raise(session, Invoice, invoice_id, "Invoice")
    return InvoiceResponse.model_validate(invoice)


@app.post("/api/invoices", response_model=InvoiceResponse, status_code=201)
def post_invoice(
    payload: InvoiceCreate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    """Invoice a job's time entries for the given (inclusive) date range."""
    logger.info(
        f"Create invoice request: client {payload.client_id}, job {payload.job_id}, "
        f"{payload.start_date:%Y-%m-%d} to {payload.end_date:%Y-%m-%d}"
    )
    invoice = create_invoice(
        session,
        client_id=payload.client_id,
        job_id=payload.job_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        now=clock(),
    )
    return InvoiceResponse.model_validate(invoice)


@app.put("/api/invoices/{invoice_id}/status", response_model=InvoiceResponse)
def put_invoice_status(
    invoice_id: int,
    payload: InvoiceStatusUpdate,
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
):
    logger.info(f"Invoice {invoice_id} status -> {payload.status}")
    invoice = set_invoice_status(session, invoice_id, payload.status, now=clock())
    return InvoiceResponse.model_validate(invoice)


@app.delete("/api/invoices/{invoice_id}", response_model=MessageResponse)
def delete_invoice(invoice_id: int, session: Session = Depends(get_session)):
    logger.info(f"Delete invoice request for ID: {invoice_id}")
    invoice = get_or_raise(session, Invoice, invoice_id, "Invoice")
    session.delete(invoice)
    session.commit()
    return MessageResponse(message="Invoice deleted")


@app.get("/api/invoices/{invoice_id}/html", response_class=HTMLResponse)
def invoice_html(invoice_id: int, session: Session = Depends(get_session)):
    """Printable HTML version of an invoice."""
    invoice = get_or_raise(session, Invoice, invoice_id, "Invoice")
    return HTMLResponse(render_invoice_html(invoice))


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Time Tracker API", "docs": "/docs"}
