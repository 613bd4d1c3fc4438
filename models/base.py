"""
Database Base Module

Creates the SQLAlchemy instance shared by all models, kept separate to
avoid circular imports. Constraint names follow a fixed convention so
migrations generated by Flask-Migrate are stable on SQLite.
"""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import MetaData

NAMING_CONVENTION = {
    'ix': 'ix_%(column_0_label)s',
    'uq': 'uq_%(table_name)s_%(column_0_name)s',
    'ck': 'ck_%(table_name)s_%(constraint_name)s',
    'fk': 'fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s',
    'pk': 'pk_%(table_name)s',
}

# Initialized with the Flask app in create_app()
db = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
