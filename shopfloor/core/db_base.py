# shopfloor/core/db_base.py
from sqlalchemy.orm import declarative_base

# Shared declarative base for parts, audit log and users
Base = declarative_base()
