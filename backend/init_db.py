"""
Initialize the database.

Run this script once to set up the tables:
    python init_db.py

Pass --token OWNER_ID to also print a bearer token for that owner, handy for
local testing while no identity service is available.
"""

import argparse

from linkpulse.database import engine, Base
from linkpulse.core.security import create_access_token
from linkpulse.utils.logger import get_logger, setup_logging

log = get_logger(__name__)


def init_database():
    """Create all database tables"""
    log.info("creating_tables", url=engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)
    log.info("tables_created")


def main():
    parser = argparse.ArgumentParser(description="LinkPulse database initialization")
    parser.add_argument("--token", metavar="OWNER_ID", help="print an access token for this owner")
    args = parser.parse_args()

    setup_logging()
    init_database()

    if args.token:
        print(create_access_token({"sub": args.token}))


if __name__ == "__main__":
    main()
