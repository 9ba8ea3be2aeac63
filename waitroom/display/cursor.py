from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from waitroom.display.gateway import ContentGateway
from waitroom.display.plan import PlayCursor
from waitroom.models.play_cursor import PlayCursorRow


class CursorStore(Protocol):
    async def get(self) -> PlayCursor | None: ...
    async def set(self, cursor: PlayCursor) -> None: ...


class GatewayCursorStore:
    """Cursor kept on the server, shared by every kiosk reading the same store."""

    def __init__(self, gateway: ContentGateway) -> None:
        self.gateway = gateway

    async def get(self) -> PlayCursor | None:
        return await self.gateway.fetch_cursor()

    async def set(self, cursor: PlayCursor) -> None:
        await self.gateway.save_cursor(cursor)


class SqlCursorStore:
    """Cursor kept in a local database row per kiosk."""

    def __init__(self, session_factory: sessionmaker, kiosk: str = "default") -> None:
        self.session_factory = session_factory
        self.kiosk = kiosk

    async def get(self) -> PlayCursor | None:
        db: Session = self.session_factory()
        try:
            row = db.get(PlayCursorRow, self.kiosk)
            if row is None:
                return None
            return PlayCursor(row.playlist_index, row.file_index)
        finally:
            db.close()

    async def set(self, cursor: PlayCursor) -> None:
        db: Session = self.session_factory()
        try:
            row = db.get(PlayCursorRow, self.kiosk)
            if row is None:
                row = PlayCursorRow(kiosk=self.kiosk)
                db.add(row)
            row.playlist_index = cursor.playlist_index
            row.file_index = cursor.file_index
            row.updated_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
