"""
Seed script: loads HR users and sample candidates into Elasticsearch.

Usage:
    ES_HOST=http://localhost:9200 python scripts/seed_data.py
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.ai_analyzer import fallback_analysis
from app.core.elasticsearch import get_es_client, init_indices
from app.core.storage import create_candidate, find_candidate_by_email, save_user, upsert_candidate_by_email
from app.models.schemas import CandidateCreate, CandidatePayload, User, UserRole

USERS = [
    {"id": "user-admin", "email": "admin@hr360.com", "first_name": "Admin", "last_name": "User", "role": UserRole.ADMIN},
    {"id": "user-hr", "email": "hr@hr360.com", "first_name": "Sarah", "last_name": "Johnson", "role": UserRole.HR},
    {"id": "user-employee", "email": "john.smith@hr360.com", "first_name": "John", "last_name": "Smith", "role": UserRole.EMPLOYEE},
]

# Screened CVs, as if they had arrived through the HR mailbox
SCREENED = [
    {
        "first_name": "Jane", "last_name": "Doe", "email": "jane.doe@example.com",
        "phone": "555-123-4567", "position": "React Developer",
        "resume": (
            "Jane Doe\n5 years experience with React, JavaScript and TypeScript. "
            "Led a project migrating a dashboard to Node.js microservices. "
            "Bachelor of Computer Science."
        ),
    },
    {
        "first_name": "Omar", "last_name": "Haddad", "email": "omar.haddad@example.com",
        "phone": "555-987-6543", "position": "Data Engineer",
        "resume": (
            "Omar Haddad\n4 years experience building ETL pipelines in Python and SQL on AWS. "
            "Docker, Git, PostgreSQL. Master degree in Applied Mathematics. AWS certified."
        ),
    },
]

# Applications submitted through the form, not screened yet
APPLIED = [
    {
        "first_name": "Lena", "last_name": "Park", "email": "lena.park@example.com",
        "position": "HR Generalist", "cover_letter": "I would love to join the people team.",
    },
]


async def main():
    print("Connecting to Elasticsearch...")
    es = get_es_client()
    try:
        await init_indices(es)

        print("\nSeeding users...")
        for data in USERS:
            user = User(**data)
            await save_user(es, user)
            print(f"  ✓ {user.first_name} {user.last_name}  ({user.role.value})")

        print("\nSeeding screened candidates...")
        for data in SCREENED:
            analysis = fallback_analysis(data["resume"], data["position"])
            payload = CandidatePayload(
                **{k: v for k, v in data.items() if k != "resume"},
                resume_url=f"https://demo-storage.com/resumes/{data['last_name'].lower()}_cv.pdf",
                **analysis.model_dump(),
            )
            result = await upsert_candidate_by_email(es, payload)
            print(f"  ✓ {payload.first_name} {payload.last_name}  ({result.action}, score {analysis.ai_score})")

        print("\nSeeding applications...")
        for data in APPLIED:
            if await find_candidate_by_email(es, data["email"]):
                print(f"  - {data['email']} already exists")
                continue
            candidate = await create_candidate(es, CandidateCreate(**data))
            print(f"  ✓ {candidate.first_name} {candidate.last_name}  ({candidate.position})")
    finally:
        await es.close()

    print("\n✅ Seed complete!")
    print("   API docs: http://localhost:8000/docs")
    print("   UI:       http://localhost:8501")


if __name__ == "__main__":
    asyncio.run(main())
