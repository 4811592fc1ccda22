from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from squadfinders.core.retry import storage_errors, storage_retry, upsert_retry

logger = logging.getLogger(__name__)

SortSpec = Sequence[Tuple[str, int]]


class DocumentStore:
    """
    Acceso asíncrono a una colección MongoDB con las operaciones que usan
    los jobs de ciclo de vida: contar, buscar, actualizar por filtro en lotes,
    actualizar por lista de ids y upsert con $inc.

    Los errores de pymongo salen traducidos a StorageError /
    TransientStorageError (salvo DuplicateKeyError).

    Las subclases declaran COLLECTION e INDEXES.
    """
    COLLECTION: str = ""
    INDEXES: List[Tuple[Any, Dict[str, Any]]] = []

    def __init__(self, db: AsyncIOMotorDatabase, collection: Optional[str] = None) -> None:
        self.db = db
        self.collection_name = collection or self.COLLECTION
        self._indexes_ensured = False

    @property
    def coll(self) -> AsyncIOMotorCollection:
        return self.db[self.collection_name]

    @storage_errors
    async def ensure_indexes(self) -> None:
        if self._indexes_ensured:
            return
        for keys, options in self.INDEXES:
            await self.coll.create_index(keys, **options)
        self._indexes_ensured = True
        logger.info(f"✅ Índices asegurados en '{self.collection_name}'")

    # ---------- lecturas ----------

    @storage_errors
    @storage_retry
    async def count_matching(self, query: Dict[str, Any]) -> int:
        return await self.coll.count_documents(query)

    @storage_errors
    @storage_retry
    async def find_matching(
        self,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        limit: int = 0,
        skip: int = 0,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.coll.find(query, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    @storage_errors
    @storage_retry
    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.coll.find_one(query)

    @storage_errors
    @storage_retry
    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return await self.coll.aggregate(pipeline).to_list(length=None)

    # ---------- escrituras ----------

    @storage_errors
    async def update_many_matching(
        self,
        query: Dict[str, Any],
        fields: Dict[str, Any],
        limit: int = 0,
        sort: Optional[SortSpec] = None,
    ) -> int:
        """
        Aplica $set a lo sumo a 'limit' documentos que cumplan 'query'.

        MongoDB no limita update_many, así que primero se seleccionan los ids
        y luego se actualiza por id repitiendo el filtro: un documento que dejó
        de cumplirlo entre ambos pasos no se toca.
        """
        if not limit:
            result = await self.coll.update_many(query, {"$set": fields})
            return result.modified_count

        docs = await self.find_matching(query, sort=sort, limit=limit, projection={"_id": 1})
        ids = [d["_id"] for d in docs]
        if not ids:
            return 0
        return await self.update_many_by_id(ids, fields, guard=query)

    @storage_errors
    @storage_retry
    async def update_many_by_id(
        self,
        ids: Iterable[Any],
        fields: Dict[str, Any],
        guard: Optional[Dict[str, Any]] = None,
    ) -> int:
        """$set sobre exactamente la lista de ids; 'guard' restringe además por estado actual."""
        query: Dict[str, Any] = dict(guard or {})
        query["_id"] = {"$in": list(ids)}
        result = await self.coll.update_many(query, {"$set": fields})
        return result.modified_count

    @storage_errors
    @upsert_retry
    async def upsert_and_increment(
        self,
        key: Dict[str, Any],
        increments: Dict[str, Any],
        fields: Optional[Dict[str, Any]] = None,
        maxes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        update: Dict[str, Any] = {"$inc": increments}
        if fields:
            update["$set"] = fields
        if maxes:
            update["$max"] = maxes
        return await self.coll.find_one_and_update(
            key,
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    @storage_errors
    async def insert_one(self, doc: Dict[str, Any]) -> Any:
        result = await self.coll.insert_one(doc)
        return result.inserted_id

    @storage_errors
    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> Optional[Dict[str, Any]]:
        return await self.coll.find_one_and_update(
            query,
            update,
            upsert=upsert,
            return_document=ReturnDocument.AFTER,
        )

    @storage_errors
    async def find_one_and_delete(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.coll.find_one_and_delete(query)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convierte _id a 'id' string para respuestas JSON."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    out.pop("claim_token", None)
    return out
