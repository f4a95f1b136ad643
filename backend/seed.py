from datetime import UTC, datetime

from sqlmodel import Session, select

from db import engine
from models import Client, Company, Job, TimeEntry


def seed_database(bind=None) -> int:
    """Seed the database with sample data. Returns the number of time entries added."""
    with Session(bind or engine) as session:
        # Check if data already exists
        existing = session.exec(select(Client)).first()
        if existing:
            print("Database already has data, skipping seed.")
            return 0

        session.add(
            Company(
                name="Northwind Consulting",
                contact_name="Jordan Lee",
                contact_email="billing@northwind.example",
                street="12 Harbor Way",
                city="Portland",
                state="OR",
                zip="97201",
            )
        )

        acme = Client(name="Acme Corp", rate=95.0, street="1 Main St", city="Springfield", state="IL", zip="62701")
        globex = Client(name="Globex", rate=120.0)
        session.add_all([acme, globex])
        session.commit()

        website = Job(client_id=acme.id, name="Website Redesign", job_number="PO-1042", contact_name="Pat Kim")
        support = Job(client_id=acme.id, name="Monthly Support")
        audit = Job(client_id=globex.id, name="Security Audit", contact_email="it@globex.example")
        session.add_all([website, support, audit])
        session.commit()

        sample_entries = [
            TimeEntry(client_id=acme.id, job_id=website.id, hours=3.5,
                      date=datetime(2024, 1, 15, tzinfo=UTC), description="Wireframes"),
            TimeEntry(client_id=acme.id, job_id=website.id, hours=5.0,
                      date=datetime(2024, 1, 16, tzinfo=UTC), description="Homepage build"),
            TimeEntry(client_id=acme.id, job_id=support.id, hours=1.25,
                      date=datetime(2024, 1, 17, tzinfo=UTC), description="Plugin updates"),
            TimeEntry(client_id=globex.id, job_id=audit.id, hours=6.0,
                      date=datetime(2024, 1, 18, tzinfo=UTC), description="Network review"),
            TimeEntry(client_id=globex.id, job_id=audit.id, hours=2.5,
                      date=datetime(2024, 1, 19, tzinfo=UTC)),
        ]

        session.add_all(sample_entries)
        session.commit()
        print(f"Seeded database with {len(sample_entries)} sample entries.")
        return len(sample_entries)


if __name__ == "__main__":
    from db import create_db_and_tables

    create_db_and_tables()
    seed_database()
