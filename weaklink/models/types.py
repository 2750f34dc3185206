# backend/weaklink/models/types.py
from .. import db

# SQLite only autoincrements INTEGER primary keys
BigIntId = db.BigInteger().with_variant(db.Integer(), "sqlite")
