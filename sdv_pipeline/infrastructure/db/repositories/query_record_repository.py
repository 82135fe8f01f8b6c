from typing import AsyncIterator, List

from sqlmodel import Session, select

from .base import BaseRepository
from ..models import QueryRecord


class QueryRecordRepository(BaseRepository[QueryRecord]):
    def __init__(self, session: Session):
        super().__init__(QueryRecord, session)

    def iter_tenant(self, tenant_id: str, page_size: int = 1000) -> AsyncIterator[List[QueryRecord]]:
        statement = (
            select(QueryRecord)
            .where(QueryRecord.tenant_id == tenant_id)
            .order_by(QueryRecord.created_at, QueryRecord.id)
        )
        return self.iter_pages(statement, page_size)
