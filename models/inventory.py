"""
Inventory Model

Contains the InventoryItem model for what is currently in the fridge.
"""

from .base import db


class InventoryItem(db.Model):
    """Stock item with optional expiry date."""
    __table_args__ = (
        db.CheckConstraint('count >= 0', name='count_non_negative'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    category = db.Column(db.String(50), default='other', index=True)
    expiry = db.Column(db.Date, nullable=True)
    count = db.Column(db.Integer, default=1, nullable=False)

    def days_until_expiry(self, today):
        """Whole days from today to expiry (negative when expired), None without expiry."""
        if self.expiry is None:
            return None
        return (self.expiry - today).days
