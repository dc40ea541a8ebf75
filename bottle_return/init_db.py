from sqlalchemy.orm import Session

from bottle_return.db import SessionLocal, engine
from bottle_return.models import SYNC_METADATA_ID, Base, SyncMetadata


def ensure_sync_metadata(db: Session) -> None:
    if not db.get(SyncMetadata, SYNC_METADATA_ID):
        db.add(SyncMetadata(id=SYNC_METADATA_ID))


def init_db() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        ensure_sync_metadata(db)
        db.commit()


def main() -> None:
    init_db()
    print('Database tables created/verified.')


if __name__ == '__main__':
    main()
