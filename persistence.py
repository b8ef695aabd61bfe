"""
Persistence collaborators for the Store.

Two interchangeable backends expose the same handful of row operations:

- SnapshotPersistence keeps one JSON document on disk with a key per
  collection, rewritten after every mutation and read back at startup.
- MongoPersistence talks to a MongoDB database through pymongo. Order lines
  are stored as separate rows and joined back with an aggregation lookup.

The Store never touches a backend directly except through these methods,
and treats any PersistenceError as "nothing was written".
"""

import copy
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

import config
import database
import fixtures
from errors import PersistenceError

logger = logging.getLogger(__name__)

COLLECTIONS = ("products", "orders", "purchase_orders", "users", "reviews")
SETTING_KEYS = ("invoice_settings", "payment_settings", "brand_assets", "current_user")

# newest first, matching how the back office lists them
PREPEND = {"orders", "purchase_orders", "reviews"}


class SnapshotPersistence:
    def __init__(self, path: str, seed: Optional[Dict[str, Any]] = None):
        self.path = path
        seed = fixtures.default_state() if seed is None else copy.deepcopy(seed)
        self.state = self._read()
        for key, value in seed.items():
            self.state.setdefault(key, value)

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read snapshot {self.path}: {e}")

    def _flush(self, state: Dict[str, Any]) -> None:
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Snapshot write failed for {self.path}: {e}")
            raise PersistenceError(f"Could not write snapshot {self.path}: {e}")

    def _commit(self, key: str, rows: Any) -> None:
        # the file is written before the in-memory state moves
        candidate = dict(self.state)
        candidate[key] = rows
        self._flush(candidate)
        self.state = candidate

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.state.get(collection, []))

    def fetch_orders(self) -> List[Dict[str, Any]]:
        return self.fetch_all("orders")

    def insert(self, collection: str, row: Dict[str, Any]) -> None:
        rows = list(self.state.get(collection, []))
        if collection in PREPEND:
            rows.insert(0, copy.deepcopy(row))
        else:
            rows.append(copy.deepcopy(row))
        self._commit(collection, rows)

    def insert_order(self, row: Dict[str, Any]) -> None:
        self.insert("orders", row)

    def update(self, collection: str, row_id: str, patch: Dict[str, Any]) -> None:
        rows = copy.deepcopy(self.state.get(collection, []))
        for row in rows:
            if row.get("id") == row_id:
                row.update(copy.deepcopy(patch))
                break
        else:
            raise PersistenceError(f"No row {row_id} in {collection}")
        self._commit(collection, rows)

    def delete(self, collection: str, row_id: str) -> None:
        rows = [row for row in self.state.get(collection, []) if row.get("id") != row_id]
        self._commit(collection, rows)

    def load_setting(self, key: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.state.get(key))

    def save_setting(self, key: str, value: Optional[Dict[str, Any]]) -> None:
        self._commit(key, copy.deepcopy(value))


class MongoPersistence:
    HIDDEN = {"_id": 0, "created_at": 0, "updated_at": 0}

    def __init__(self, db):
        self.db = db

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        direction = -1 if collection in PREPEND else 1
        try:
            cursor = self.db[collection].find({}, self.HIDDEN).sort("created_at", direction)
            return list(cursor)
        except PyMongoError as e:
            logger.error(f"fetch_all({collection}) failed: {e}")
            raise PersistenceError(f"Could not load {collection}")

    def fetch_orders(self) -> List[Dict[str, Any]]:
        """Each order together with its line items and the purchaser's current name."""
        pipeline = [
            {"$sort": {"created_at": -1}},
            {"$lookup": {"from": "order_item", "localField": "id", "foreignField": "order_id", "as": "items"}},
            {"$lookup": {"from": "users", "localField": "user_id", "foreignField": "id", "as": "purchaser"}},
        ]
        try:
            docs = list(self.db["orders"].aggregate(pipeline))
        except PyMongoError as e:
            logger.error(f"fetch_orders failed: {e}")
            raise PersistenceError("Could not load orders")
        result = []
        for doc in docs:
            for key in self.HIDDEN:
                doc.pop(key, None)
            items = sorted(doc.get("items", []), key=lambda it: it.get("position", 0))
            doc["items"] = [_strip_line(it) for it in items]
            purchaser = doc.pop("purchaser", [])
            if purchaser:
                doc["user_name"] = purchaser[0].get("name", doc.get("user_name"))
            result.append(doc)
        return result

    def insert(self, collection: str, row: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        doc = dict(row, created_at=now, updated_at=now)
        try:
            self.db[collection].insert_one(doc)
        except PyMongoError as e:
            logger.error(f"insert into {collection} failed: {e}")
            raise PersistenceError(f"Could not save to {collection}")

    def insert_order(self, row: Dict[str, Any]) -> None:
        header = {k: v for k, v in row.items() if k != "items"}
        self.insert("orders", header)
        for position, item in enumerate(row.get("items", [])):
            self.insert("order_item", dict(item, order_id=row["id"], position=position))

    def update(self, collection: str, row_id: str, patch: Dict[str, Any]) -> None:
        changes = dict(patch, updated_at=datetime.now(timezone.utc))
        try:
            res = self.db[collection].update_one({"id": row_id}, {"$set": changes})
        except PyMongoError as e:
            logger.error(f"update {collection}/{row_id} failed: {e}")
            raise PersistenceError(f"Could not update {collection}")
        if res.matched_count == 0:
            raise PersistenceError(f"No row {row_id} in {collection}")

    def delete(self, collection: str, row_id: str) -> None:
        try:
            self.db[collection].delete_one({"id": row_id})
            if collection == "orders":
                self.db["order_item"].delete_many({"order_id": row_id})
        except PyMongoError as e:
            logger.error(f"delete {collection}/{row_id} failed: {e}")
            raise PersistenceError(f"Could not delete from {collection}")

    def load_setting(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db["settings"].find_one({"key": key})
        except PyMongoError as e:
            logger.error(f"load_setting({key}) failed: {e}")
            raise PersistenceError(f"Could not load {key}")
        if doc is None:
            return copy.deepcopy(fixtures.SETTING_DEFAULTS.get(key))
        return doc.get("value")

    def save_setting(self, key: str, value: Optional[Dict[str, Any]]) -> None:
        try:
            self.db["settings"].update_one({"key": key}, {"$set": {"key": key, "value": value}}, upsert=True)
        except PyMongoError as e:
            logger.error(f"save_setting({key}) failed: {e}")
            raise PersistenceError(f"Could not save {key}")

    def seed(self) -> int:
        """Insert the starter catalog and accounts into an empty database."""
        if self.db["products"].count_documents({}) > 0:
            return 0
        state = fixtures.default_state()
        inserted = 0
        for collection in COLLECTIONS:
            rows = state[collection]
            if collection in PREPEND:
                # stored oldest first so the newest-first listing keeps fixture order
                rows = list(reversed(rows))
            for row in rows:
                if collection == "orders":
                    self.insert_order(row)
                else:
                    self.insert(collection, row)
                inserted += 1
        return inserted


def _strip_line(item: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("_id", "created_at", "updated_at", "order_id", "position"):
        item.pop(key, None)
    return item


def build_persistence():
    """Pick the backend named by STORE_BACKEND."""
    if config.STORE_BACKEND == "mongo":
        if database.db is None:
            raise PersistenceError("STORE_BACKEND=mongo but DATABASE_URL / DATABASE_NAME are not set")
        logger.info(f"Using MongoDB backend '{config.DATABASE_NAME}'")
        return MongoPersistence(database.db)
    logger.info(f"Using snapshot backend at {config.SNAPSHOT_PATH}")
    return SnapshotPersistence(config.SNAPSHOT_PATH)
