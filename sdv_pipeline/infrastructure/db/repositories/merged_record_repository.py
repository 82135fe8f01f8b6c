from typing import AsyncIterator, Dict, List, Optional, Tuple
from uuid import UUID

from sqlmodel import Session, select, func

from .base import BaseRepository
from ..models import MergedRecord

FILTER_COLUMNS = {
    "site": MergedRecord.site_name,
    "subject": MergedRecord.subject_id,
    "visit": MergedRecord.visit_type,
    "crf": MergedRecord.crf_name,
}


class MergedRecordRepository(BaseRepository[MergedRecord]):
    def __init__(self, session: Session):
        super().__init__(MergedRecord, session)

    def _filtered(self, statement, upload_id: UUID, filters: Optional[Dict[str, Optional[str]]]):
        statement = statement.where(MergedRecord.upload_id == upload_id)
        for name, value in (filters or {}).items():
            if value is not None and name in FILTER_COLUMNS:
                statement = statement.where(FILTER_COLUMNS[name] == value)
        return statement

    def iter_upload(
        self,
        upload_id: UUID,
        filters: Optional[Dict[str, Optional[str]]] = None,
        page_size: int = 1000,
    ) -> AsyncIterator[List[MergedRecord]]:
        statement = self._filtered(select(MergedRecord), upload_id, filters).order_by(MergedRecord.position)
        return self.iter_pages(statement, page_size)

    async def list_page(
        self,
        upload_id: UUID,
        filters: Optional[Dict[str, Optional[str]]],
        page: int,
        page_size: int,
    ) -> Tuple[List[MergedRecord], int]:
        statement = self._filtered(select(MergedRecord), upload_id, filters)
        total = self.session.exec(
            self._filtered(select(func.count()).select_from(MergedRecord), upload_id, filters)
        ).one()
        rows = self.session.exec(
            statement.order_by(MergedRecord.position).offset((page - 1) * page_size).limit(page_size)
        ).all()
        return list(rows), total

    async def distinct_values(self, upload_id: UUID, column_name: str) -> List[str]:
        column = FILTER_COLUMNS[column_name]
        statement = (
            select(column)
            .where(MergedRecord.upload_id == upload_id)
            .where(column.is_not(None))
            .where(column != "")
            .distinct()
            .order_by(column)
        )
        return list(self.session.exec(statement).all())

    async def delete_for_upload(self, upload_id: UUID) -> int:
        return await self.delete_where(upload_id=upload_id)
