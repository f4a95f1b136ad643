"""Dashboard statistics: hours and earnings totals with per-client and per-job breakdowns."""
import logging
import math
from collections.abc import Iterable
from datetime import datetime

from sqlmodel import Session, select

from models import Client, Job, TimeEntry
from timeutils import as_utc, end_of_day

logger = logging.getLogger(__name__)


def round2(value: float) -> float:
    """Round half-up to 2 decimal places (``Math.round(x * 100) / 100``)."""
    return math.floor(value * 100 + 0.5) / 100


def compute_stats(
    entries: Iterable[TimeEntry],
    clients: Iterable[Client],
    jobs: Iterable[Job],
) -> dict:
    """
    Aggregate time entries into dashboard statistics.

    Entries whose client id does not resolve to a known client are counted
    in ``entry_count`` but contribute to neither hours nor earnings. Running
    sums stay unrounded; rounding is applied once to each reported value.

    Returns dict with total_hours, total_earnings, client_count, entry_count
    and by_client (sorted by earnings desc, each with jobs sorted by hours desc).
    """
    clients = list(clients)
    client_map = {c.id: c for c in clients}
    job_map = {j.id: j for j in jobs}

    total_hours = 0.0
    total_earnings = 0.0
    entry_count = 0
    client_stats: dict[int, dict] = {}

    for entry in entries:
        entry_count += 1
        client = client_map.get(entry.client_id)
        if client is None:
            continue

        earnings = entry.hours * client.rate
        total_hours += entry.hours
        total_earnings += earnings

        stats = client_stats.get(entry.client_id)
        if stats is None:
            stats = client_stats[entry.client_id] = {
                "client_id": client.id,
                "name": client.name,
                "rate": client.rate,
                "hours": 0.0,
                "earnings": 0.0,
                "jobs": {},
            }
        stats["hours"] += entry.hours
        stats["earnings"] += earnings

        job_stats = stats["jobs"].get(entry.job_id)
        if job_stats is None:
            job = job_map.get(entry.job_id)
            job_stats = stats["jobs"][entry.job_id] = {
                "job_id": entry.job_id,
                "name": job.name if job else "Unknown",
                "hours": 0.0,
                "earnings": 0.0,
            }
        job_stats["hours"] += entry.hours
        job_stats["earnings"] += earnings

    by_client = []
    for stats in client_stats.values():
        job_rows = [
            {**job, "hours": round2(job["hours"]), "earnings": round2(job["earnings"])}
            for job in stats["jobs"].values()
        ]
        job_rows.sort(key=lambda j: j["hours"], reverse=True)
        by_client.append(
            {
                **stats,
                "hours": round2(stats["hours"]),
                "earnings": round2(stats["earnings"]),
                "jobs": job_rows,
            }
        )
    by_client.sort(key=lambda c: c["earnings"], reverse=True)

    return {
        "total_hours": round2(total_hours),
        "total_earnings": round2(total_earnings),
        "client_count": len(clients),
        "entry_count": entry_count,
        "by_client": by_client,
    }


def dashboard_stats(
    session: Session,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """Load entries (optionally within [start_date, end of end_date]) and aggregate them."""
    stmt = select(TimeEntry)
    if start_date is not None:
        stmt = stmt.where(TimeEntry.date >= as_utc(start_date))
    if end_date is not None:
        stmt = stmt.where(TimeEntry.date <= end_of_day(end_date))

    entries = session.exec(stmt).all()
    clients = session.exec(select(Client)).all()
    jobs = session.exec(select(Job)).all()

    logger.info(f"Aggregating {len(entries)} entries across {len(clients)} clients")
    return compute_stats(entries, clients, jobs)
