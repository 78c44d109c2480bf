"""
Data Seeder for WorkTrack.
Populates the database with a demo organization for trying out KPI reports.
"""

import asyncio
import random
import sys
from datetime import datetime, timedelta, date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from worktrack.domain.models import (
    Membership, MembershipRole, Organization, Project, Report, Task, TaskStatus, TimeEntry, User,
)
from worktrack.infra.db import init_db
from worktrack.infra.repository import (
    MembershipRepository, OrganizationRepository, ProjectRepository, ReportRepository, TaskRepository,
    TimeEntryRepository, UserRepository,
)

ORG_ID = "org_demo"

# (user id, name, role, typical hours per day, chance of filing a daily report)
PEOPLE = [
    ("u_ada", "Ada Owner", MembershipRole.OWNER, 6.0, 0.9),
    ("u_ben", "Ben Builder", MembershipRole.STAFF, 9.5, 0.8),
    ("u_cai", "Cai Coder", MembershipRole.STAFF, 7.5, 0.6),
    ("u_dee", "Dee Drifter", MembershipRole.STAFF, 2.0, 0.1),
    ("u_eve", "Eve Client", MembershipRole.CLIENT, 0.0, 0.0),
]


async def seed(start_date: date, end_date: date):
    print("Starting data seeding...")
    db = await init_db()

    async with db.transaction() as session:
        await OrganizationRepository(session).create(Organization(id=ORG_ID, name="Demo Organization"))
        projects = [
            await ProjectRepository(session).create(Project(org_id=ORG_ID, name=name))
            for name in ("Website Relaunch", "Mobile App")
        ]

        for user_id, name, role, _, _ in PEOPLE:
            email = f"{name.split()[0].lower()}@example.com"
            await UserRepository(session).create(User(id=user_id, email=email, name=name))
            await MembershipRepository(session).create(Membership(user_id=user_id, org_id=ORG_ID, role=role))
            print(f"Created member: {name} ({role.value})")

        task_repo = TaskRepository(session)
        entry_repo = TimeEntryRepository(session)
        report_repo = ReportRepository(session)

        current = start_date
        while current <= end_date:
            # Skip weekends
            if current.weekday() >= 5:
                current += timedelta(days=1)
                continue

            day_start = datetime.combine(current, datetime.min.time()).replace(hour=9)
            for user_id, name, role, hours, report_chance in PEOPLE:
                if hours <= 0:
                    continue
                worked = max(0.5, random.gauss(hours, 1.0))
                project = random.choice(projects)
                completed = random.random() < hours / 10
                task = await task_repo.create(Task(
                    org_id=ORG_ID,
                    user_id=user_id,
                    title=f"{project.name} work {current.isoformat()}",
                    status=TaskStatus.COMPLETED if completed else TaskStatus.IN_PROGRESS,
                    completed_at=day_start + timedelta(hours=worked) if completed else None,
                    due_date=day_start + timedelta(days=2),
                    project_id=project.id,
                ))
                duration = int(worked * 3600)
                await entry_repo.create(TimeEntry(
                    user_id=user_id,
                    org_id=ORG_ID,
                    task_id=task.id,
                    begin=day_start,
                    end=day_start + timedelta(seconds=duration),
                    duration=duration,
                    is_billable=random.random() < 0.7,
                    description=f"Working on {project.name}",
                ))
                if random.random() < report_chance:
                    await report_repo.create(Report(
                        user_id=user_id,
                        org_id=ORG_ID,
                        body=f"Progress on {project.name}",
                        created_at=day_start + timedelta(hours=8),
                    ))

            print(f"Generated activity for {current}")
            current += timedelta(days=1)

    await db.dispose()
    print("Seeding complete.")


if __name__ == "__main__":
    today = date.today()
    asyncio.run(seed(today - timedelta(days=35), today))
