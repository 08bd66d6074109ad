# tools/supabase_tools.py
from typing import Dict, List, Optional
from supabase import acreate_client, AsyncClient
from postgrest.exceptions import APIError
from config.config import SUPABASE_URL, SUPABASE_KEY
from utils.errors import RecordLookupError, PersistenceError
from utils.logging_setup import setup_logging

logger = setup_logging()


def _error_message(e: Exception) -> str:
    if isinstance(e, APIError) and e.message:
        return e.message
    return str(e)


async def get_supabase_client(url: str = None, key: str = None) -> AsyncClient:
    url = url or SUPABASE_URL
    key = key or SUPABASE_KEY
    if not all([url, key]):
        logger.error("Configurações do Supabase não estão completas")
        raise RecordLookupError("Configuração Supabase incompleta. Verifique as variáveis de ambiente.")
    return await acreate_client(url, key)


class SupabaseStore:
    """
    Record store backed by Supabase tables.

    Every call is a single request; nothing is retried. Query failures are
    raised as RecordLookupError and write failures as PersistenceError, both
    carrying the message returned by the backend.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def connect(cls, url: str = None, key: str = None) -> "SupabaseStore":
        return cls(await get_supabase_client(url, key))

    async def find(
        self,
        collection: str,
        filters: Optional[Dict] = None,
        select: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict]:
        try:
            query = self.client.table(collection).select(select)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by, desc=descending)
            response = await query.execute()
            logger.debug(f"[{collection}] Find {filters} returned {len(response.data or [])} rows")
            return response.data or []
        except Exception as e:
            logger.error(f"[{collection}] Error querying with filters {filters}: {_error_message(e)}")
            raise RecordLookupError(_error_message(e)) from e

    async def insert(self, collection: str, record: Dict) -> Dict:
        try:
            response = await self.client.table(collection).insert(record).execute()
        except Exception as e:
            logger.error(f"[{collection}] Error inserting record: {_error_message(e)}")
            raise PersistenceError(_error_message(e)) from e
        if not response.data:
            logger.error(f"[{collection}] Insert returned no representation")
            raise PersistenceError("Erro ao guardar registo")
        logger.debug(f"[{collection}] Inserted record {response.data[0].get('id')}")
        return response.data[0]

    async def update(self, collection: str, record_id: str, patch: Dict) -> Dict:
        try:
            response = await self.client.table(collection).update(patch).eq("id", record_id).execute()
        except Exception as e:
            logger.error(f"[{collection}] Error updating record {record_id}: {_error_message(e)}")
            raise PersistenceError(_error_message(e)) from e
        if not response.data:
            logger.error(f"[{collection}] Record {record_id} not found for update")
            raise PersistenceError("Registo não encontrado")
        logger.debug(f"[{collection}] Updated record {record_id} with {patch}")
        return response.data[0]

    async def delete(self, collection: str, record_id: str) -> None:
        try:
            await self.client.table(collection).delete().eq("id", record_id).execute()
        except Exception as e:
            logger.error(f"[{collection}] Error deleting record {record_id}: {_error_message(e)}")
            raise PersistenceError(_error_message(e)) from e
        logger.debug(f"[{collection}] Deleted record {record_id}")
