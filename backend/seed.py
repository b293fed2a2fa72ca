#!/usr/bin/env python3
"""
Insert a handful of sample candidates for local development. Existing emails
are left untouched, so the script can be re-run.
"""

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.app.database import SessionLocal, init_db
from backend.app.models.candidate import Candidate
from backend.app.schemas.candidate import CandidateCreate
from backend.app.services.candidate_service import create_candidate

SAMPLE_CANDIDATES = [
    {
        "first_name": "Amara",
        "last_name": "Okafor",
        "email": "amara.okafor@example.com",
        "phone": "+44 20 7946 0018",
        "address": "12 St James's Square, London, United Kingdom",
        "education": [{"degree": "MSc Computer Science", "institution": "University of London", "graduation_year": 2016}],
        "work_experience": [
            {
                "company": "Northwind Analytics",
                "position": "Data Engineer",
                "start_date": date(2016, 9, 1),
                "end_date": date(2021, 3, 31),
                "description": "Built batch and streaming pipelines for retail reporting.",
            }
        ],
    },
    {
        "first_name": "Daniel",
        "last_name": "Reyes",
        "email": "daniel.reyes@example.com",
        "phone": "+1 202 555 0143",
        "address": "Arlington, Virginia, United States",
        "education": [{"degree": "BSc Software Engineering", "institution": "George Mason University", "graduation_year": 2019}],
        "work_experience": [
            {
                "company": "Bluefield Systems",
                "position": "Backend Developer",
                "start_date": date(2019, 6, 1),
                "end_date": None,
                "description": "Maintains the billing API and its PostgreSQL schema.",
            }
        ],
    },
    {
        "first_name": "Léa",
        "last_name": "Moreau",
        "email": "lea.moreau@example.com",
        "phone": None,
        "address": "Lyon, France",
        "education": [{"degree": "Diplôme d'ingénieur", "institution": "École Centrale de Lyon", "graduation_year": 2022}],
        "work_experience": [],
    },
    {
        "first_name": "Priya",
        "last_name": "Natarajan",
        "email": "priya.natarajan@example.com",
        "phone": "+1 757 555 0101",
        "address": "Hampton, Virginia, United States",
        "education": [{"degree": "BSc Aerospace Engineering", "institution": "Virginia Tech", "graduation_year": 2012}],
        "work_experience": [
            {
                "company": "Acme Aeronautics",
                "position": "Flight Software Engineer",
                "start_date": date(2012, 7, 1),
                "end_date": date(2020, 8, 1),
                "description": "Worked on guidance software for test flights.",
            }
        ],
    },
]


def seed() -> int:
    init_db()
    db = SessionLocal()
    created = 0
    try:
        for sample in SAMPLE_CANDIDATES:
            if db.query(Candidate).filter(Candidate.email == sample["email"]).first():
                print(f"- {sample['email']} already present")
                continue
            # Same rules as the API, so seeded rows survive a round-trip update.
            data = CandidateCreate.model_validate(sample).model_dump()
            create_candidate(db, data)
            created += 1
            print(f"✓ created {sample['first_name']} {sample['last_name']}")
    finally:
        db.close()
    print(f"✓ Seeded {created} candidate(s)")
    return created


if __name__ == "__main__":
    seed()
