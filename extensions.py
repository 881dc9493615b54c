from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import MetaData

# Named constraints, so a duplicate email shows up as uq_users_email in store errors
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}

db = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
