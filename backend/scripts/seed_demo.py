"""CLI script to load demo data into the backend DB.
Usage: python scripts/seed_demo.py
"""
import sys
import pathlib
# Ensure `backend/` is on sys.path so `learnrail` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from learnrail.database import engine, create_db_and_tables
from learnrail.seed import seed, ADMIN_EMAIL, DEMO_PASSWORD


def main():
    create_db_and_tables()
    with Session(engine) as session:
        result = seed(session)
    if result['created']:
        print(f'Seeded demo data. Log in as {ADMIN_EMAIL} / {DEMO_PASSWORD}')
    else:
        print('Demo data already present')


if __name__ == '__main__':
    main()
