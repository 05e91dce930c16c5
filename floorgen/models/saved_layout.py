import datetime

from floorgen import db


class SavedLayout(db.Model):
    __tablename__ = 'saved_layouts'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=True)
    seed = db.Column(db.BigInteger, nullable=False)
    schema_version = db.Column(db.Integer, nullable=False)
    width = db.Column(db.Integer, nullable=False)
    height = db.Column(db.Integer, nullable=False)
    room_count = db.Column(db.Integer, nullable=False)
    corridor_count = db.Column(db.Integer, nullable=False, default=0)
    # Compact binary encoding of the full layout; decode with floorgen.layout.decode_binary
    payload = db.Column(db.LargeBinary, nullable=False)
    # Generation parameters as submitted (seed already resolved)
    params = db.Column(db.JSON, default={})
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    def summary(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'seed': self.seed,
            'schemaVersion': self.schema_version,
            'width': self.width,
            'height': self.height,
            'rooms': self.room_count,
            'corridors': self.corridor_count,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<SavedLayout {self.id} seed={self.seed} rooms={self.room_count}>'
