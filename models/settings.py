"""
Settings Model

Key/value rows behind services.settings.AppSettings.
"""

from datetime import datetime

from .base import db


class Settings(db.Model):
    """One user setting, stored as text and parsed on load."""
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False)
    value = db.Column(db.String(200))
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    @classmethod
    def as_dict(cls):
        return {row.key: row.value for row in cls.query.all()}
