"""Lookups and cascading deletes over the client/job/time-entry tables."""
import logging
from typing import TypeVar

from sqlmodel import Session, SQLModel, col, delete, or_, select

from errors import NotFound
from models import Client, Job, TimeEntry

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


def get_or_raise(session: Session, model: type[ModelT], record_id: int, label: str) -> ModelT:
    """Fetch a row by primary key or raise NotFound("<label> not found")."""
    record = session.get(model, record_id)
    if record is None:
        raise NotFound(f"{label} not found")
    return record


def delete_job(session: Session, job_id: int) -> int:
    """Delete a job and its time entries. Returns the number of entries removed."""
    job = get_or_raise(session, Job, job_id, "Job")

    result = session.exec(delete(TimeEntry).where(TimeEntry.job_id == job_id))
    session.delete(job)
    session.commit()

    logger.info(f"Deleted job {job_id} and {result.rowcount} time entries")
    return result.rowcount


def delete_client(session: Session, client_id: int) -> dict:
    """
    Delete a client, all of its jobs, and every time entry that references
    either the client or one of those jobs. Invoices are left untouched.
    """
    client = get_or_raise(session, Client, client_id, "Client")

    job_ids = session.exec(select(Job.id).where(Job.client_id == client_id)).all()

    entries_stmt = delete(TimeEntry).where(TimeEntry.client_id == client_id)
    if job_ids:
        entries_stmt = delete(TimeEntry).where(
            or_(TimeEntry.client_id == client_id, col(TimeEntry.job_id).in_(job_ids))
        )
    entries_result = session.exec(entries_stmt)
    session.exec(delete(Job).where(Job.client_id == client_id))
    session.delete(client)
    session.commit()

    counts = {"jobs": len(job_ids), "time_entries": entries_result.rowcount}
    logger.info(f"Deleted client {client_id}: {counts['jobs']} jobs, {counts['time_entries']} time entries")
    return counts
