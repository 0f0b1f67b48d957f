"""
Database access

One MongoClient per process, built from DATABASE_URL / DATABASE_NAME, and a
generic repository over a named collection. Ids are exposed as strings and
stored as ObjectId under `_id`.
"""

import re
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from bson import ObjectId
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import get_settings
from schemas import MongoModel, Product

_settings = get_settings()

DATABASE_URL = _settings.mongo.connection_string
DATABASE_NAME = _settings.mongo.database_name

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def to_object_id(value: str) -> Optional[ObjectId]:
    if value is None or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def to_str_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


T = TypeVar("T", bound=MongoModel)


class Repository(Generic[T]):
    """CRUD over one collection. `update` replaces the whole document."""

    def __init__(self, collection: Collection, model: Type[T]):
        self.collection = collection
        self.model = model

    def _load(self, doc: Dict[str, Any]) -> T:
        return self.model.model_validate(to_str_id(doc))

    def _dump(self, entity: T) -> Dict[str, Any]:
        return entity.model_dump(exclude={"id"})

    def get_all(self) -> List[T]:
        return [self._load(d) for d in self.collection.find({})]

    def get_by_id(self, id: str) -> Optional[T]:
        oid = to_object_id(id)
        if oid is None:
            return None
        doc = self.collection.find_one({"_id": oid})
        return self._load(doc) if doc else None

    def find(self, filter_dict: Dict[str, Any]) -> List[T]:
        return [self._load(d) for d in self.collection.find(filter_dict)]

    def create(self, entity: T) -> T:
        doc = self._dump(entity)
        entity.id = str(self.collection.insert_one(doc).inserted_id)
        return entity

    def update(self, id: str, entity: T) -> None:
        oid = to_object_id(id)
        if oid is None:
            return
        self.collection.replace_one({"_id": oid}, self._dump(entity))

    def delete(self, id: str) -> None:
        oid = to_object_id(id)
        if oid is None:
            return
        self.collection.delete_one({"_id": oid})


class ProductRepository(Repository[Product]):
    def __init__(self, collection: Collection):
        super().__init__(collection, Product)

    def get_by_vendor(self, vendor_id: str) -> List[Product]:
        return self.find({"vendor_id": vendor_id})

    def get_by_category(self, category_id: str) -> List[Product]:
        return self.find({"categories": category_id})

    def search(self, term: str) -> List[Product]:
        pattern = re.escape(term)
        return self.find({
            "$or": [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        })
