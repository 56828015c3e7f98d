# Models/base.py
from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base

# Shared by auth and complaint models so one create_all builds every table.
Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
PK_TYPE = BigInteger().with_variant(Integer, "sqlite")
