from typing import AsyncIterator, List, Type, Union
from uuid import UUID

from sqlmodel import Session, select

from .base import BaseRepository
from ..models import SiteDataEntryRecord, SdvDataRecord

RawRecord = Union[SiteDataEntryRecord, SdvDataRecord]


class RawRecordRepository(BaseRepository[RawRecord]):
    """Staged rows of one export kind"""

    def __init__(self, model: Type[RawRecord], session: Session):
        super().__init__(model, session)

    def iter_upload(self, upload_id: UUID, page_size: int = 1000) -> AsyncIterator[List[RawRecord]]:
        """Pages of an upload's rows in file order (chunk, then row)."""
        statement = (
            select(self.model)
            .where(self.model.upload_id == upload_id)
            .order_by(self.model.chunk_number, self.model.row_number, self.model.id)
        )
        return self.iter_pages(statement, page_size)

    async def delete_for_upload(self, upload_id: UUID) -> int:
        return await self.delete_where(upload_id=upload_id)
