# src/libs/portools-common/portools_common/db_base.py
from sqlalchemy.orm import declarative_base

# Single declarative base shared by every table and by alembic's env.py.
Base = declarative_base()
