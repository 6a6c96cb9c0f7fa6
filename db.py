# backend/db.py
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()

# BIGINT keys in MySQL; SQLite only autoincrements a plain INTEGER primary key
ID_TYPE = db.BigInteger().with_variant(db.Integer(), "sqlite")
