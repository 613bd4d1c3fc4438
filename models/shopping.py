"""
Shopping Model

Contains the ShoppingEntry model. Entries added by the automatic
fill always carry a source_label; manual entries never do.
"""

from .base import db


class ShoppingEntry(db.Model):
    """Shopping list entry with source tracking for auto-added items."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(50), default='other')
    count = db.Column(db.Integer, default=1, nullable=False)
    checked = db.Column(db.Boolean, default=False, nullable=False)
    # e.g. "鶏の照り焼き (dinner), 味噌汁 (dinner)"; None for manual entries
    source_label = db.Column(db.String(500), nullable=True)
    # Amount from the recipe, e.g. "300g"
    amount_label = db.Column(db.String(20), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'count': self.count,
            'checked': self.checked,
            'source_label': self.source_label,
            'amount_label': self.amount_label,
        }
