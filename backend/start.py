"""Startup script for deployment: create missing tables, then serve the API."""

import uvicorn
from sqlalchemy import inspect

from tsureben.db.base import Base
from tsureben.db.session import engine
from tsureben.models import Document, User  # noqa: F401


def main():
    tables = inspect(engine).get_table_names()
    if "users" not in tables:
        print("Fresh database detected, creating all tables...")
        Base.metadata.create_all(bind=engine)
        print("Tables created.")
    uvicorn.run("tsureben.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
