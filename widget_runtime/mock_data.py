"""In-memory emulation of the Mendix client data API (``mx.data``).

Datasources are backed by JSON text supplied as property values. Each
parsed record becomes a :class:`MockObject` with a stable guid; a
re-sync reuses guids by the caller's identity field first and by array
index second. Every successful mutation hands the complete item list of
the affected datasource to the commit sink, never a partial delta.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from .errors import MalformedDatasourceError, MockDataOperationError, ObjectNotFoundError

logger = logging.getLogger(__name__)

CommitSink = Callable[[str, List[Dict[str, Any]]], None]

ENTITY_PREFIX = "Preview"

_DEFAULTS_BY_TYPE: Dict[str, Any] = {
    "String": "",
    "Boolean": False,
    "Integer": 0,
    "Decimal": 0.0,
}


def infer_attribute_type(value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Decimal"
    if isinstance(value, (list, dict)):
        return "Object"
    return "String"


def entity_name_for(datasource_key: str) -> str:
    return f"{ENTITY_PREFIX}.{datasource_key}"


class MockObject:
    """Emulated platform record with a stable guid and attribute accessors."""

    def __init__(
        self,
        guid: str,
        entity_name: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        datasource_key: Optional[str] = None,
        is_new: bool = False,
        is_dynamic: bool = False,
    ) -> None:
        self.guid = guid
        self.entity_name = entity_name
        self.data: Dict[str, Any] = dict(data or {})
        self.datasource_key = datasource_key
        self.is_new = is_new
        self.is_dynamic = is_dynamic

    @property
    def id(self) -> str:
        return self.guid

    def get(self, attr: str) -> Any:
        return self.data.get(attr)

    def set(self, attr: str, value: Any) -> None:
        self.data[attr] = value

    def has(self, attr: str) -> bool:
        return attr in self.data

    def get_guid(self) -> str:
        return self.guid

    def get_entity(self) -> str:
        return self.entity_name

    def get_attributes(self) -> List[str]:
        return list(self.data.keys())

    def to_record(self, key_field: str = "id") -> Dict[str, Any]:
        record = dict(self.data)
        record.setdefault(key_field, self.guid)
        return record

    def __repr__(self) -> str:
        return f"MockObject(guid={self.guid!r}, entity={self.entity_name!r}, data={self.data!r})"


class Datasource:
    """Live list value bound to one datasource-typed property."""

    def __init__(self, key: str, entity_name: Optional[str] = None) -> None:
        self.key = key
        self.entity_name = entity_name or entity_name_for(key)
        self.items: List[MockObject] = []
        self.attribute_schema: Dict[str, Dict[str, str]] = {}
        self.status = "available"
        self.error: Optional[MockDataOperationError] = None
        self.offset = 0
        self.has_more_items = False

    @property
    def total_count(self) -> int:
        return len(self.items)

    def merge_schema(self, record: Dict[str, Any], key_field: str) -> None:
        for attr, value in record.items():
            if attr == key_field or attr in self.attribute_schema:
                continue
            self.attribute_schema[attr] = {"type": infer_attribute_type(value)}

    def blank_record(self) -> Dict[str, Any]:
        return {attr: _DEFAULTS_BY_TYPE.get(info.get("type", ""), None) for attr, info in self.attribute_schema.items()}

    def __repr__(self) -> str:
        return f"Datasource(key={self.key!r}, items={len(self.items)}, status={self.status!r})"


def parse_datasource_records(key: str, raw: Any) -> List[Dict[str, Any]]:
    """Turn a datasource property value into a list of record dicts."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return []
    value = raw
    if isinstance(raw, (str, bytes)):
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedDatasourceError(key, str(exc)) from exc
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        raise MalformedDatasourceError(key, f"expected a list of objects, got {type(value).__name__}")
    for index, record in enumerate(value):
        if not isinstance(record, dict):
            raise MalformedDatasourceError(key, f"item {index} is not an object")
    return [dict(record) for record in value]


def _normalized(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(raw)


class MockDataLayer:
    """Object store plus the ``get``/``create``/``commit``/``remove`` surface."""

    def __init__(
        self,
        commit_sink: Optional[CommitSink] = None,
        *,
        identity_key_field: str = "id",
        evict_after_misses: int = 2,
    ) -> None:
        self._commit_sink = commit_sink
        self.identity_key_field = identity_key_field
        self.evict_after_misses = max(1, int(evict_after_misses))
        self._objects: Dict[str, MockObject] = {}
        self._datasources: Dict[str, Datasource] = {}
        self._misses: Dict[str, Dict[str, int]] = {}
        self._last_source: Dict[str, str] = {}

    # --- lookups -------------------------------------------------------------
    @property
    def datasources(self) -> Dict[str, Datasource]:
        return dict(self._datasources)

    def datasource(self, key: str) -> Optional[Datasource]:
        return self._datasources.get(key)

    def lookup(self, guid: str) -> Optional[MockObject]:
        return self._objects.get(guid)

    def object_count(self) -> int:
        return len(self._objects)

    def records(self, key: str) -> List[Dict[str, Any]]:
        datasource = self._datasources.get(key)
        if datasource is None:
            return []
        return [obj.to_record(self.identity_key_field) for obj in datasource.items]

    # --- re-synchronisation --------------------------------------------------
    def sync_datasource(self, key: str, raw: Any) -> Datasource:
        """Bring the live datasource for ``key`` in line with its backing JSON."""
        datasource = self._datasources.get(key)
        if datasource is None:
            datasource = Datasource(key)
            self._datasources[key] = datasource
            self._misses[key] = {}

        source = _normalized(raw)
        if self._last_source.get(key) == source:
            return datasource

        try:
            records = parse_datasource_records(key, raw)
        except MalformedDatasourceError as exc:
            logger.warning("datasource %s: %s", key, exc)
            datasource.status = "unavailable"
            datasource.error = exc
            # the next valid text must parse again, even if it matches the last good one
            self._last_source.pop(key, None)
            return datasource
        self._last_source[key] = source

        key_field = self.identity_key_field
        guids = self._assign_guids(datasource, records)
        items: List[MockObject] = []
        for guid, record in zip(guids, records):
            obj = self._objects.get(guid)
            if obj is None:
                obj = MockObject(guid, datasource.entity_name, record, datasource_key=key)
                self._objects[guid] = obj
            else:
                obj.data = record
                obj.datasource_key = key
            items.append(obj)
        if records:
            datasource.merge_schema(records[0], key_field)

        self._evict_missing(key, set(guids))
        datasource.items = items
        datasource.status = "available"
        datasource.error = None
        return datasource

    def drop_datasource(self, key: str) -> bool:
        """Forget a datasource and every object it owns, dynamic ones included."""
        datasource = self._datasources.pop(key, None)
        self._misses.pop(key, None)
        self._last_source.pop(key, None)
        if datasource is None:
            return False
        owned = [guid for guid, obj in self._objects.items() if obj.datasource_key == key]
        for guid in owned:
            del self._objects[guid]
        logger.debug("datasource %s: dropped with %d object(s)", key, len(owned))
        return True

    def _assign_guids(self, datasource: Datasource, records: List[Dict[str, Any]]) -> List[str]:
        key_field = self.identity_key_field
        claimed: set[str] = set()
        assigned: List[Optional[str]] = [None] * len(records)

        for index, record in enumerate(records):
            natural = record.get(key_field)
            if natural is None or natural == "":
                continue
            guid = str(natural)
            owner = self._objects.get(guid)
            if guid in claimed or (owner is not None and owner.datasource_key not in (None, datasource.key)):
                continue
            assigned[index] = guid
            claimed.add(guid)

        previous = datasource.items
        for index in range(len(records)):
            if assigned[index] is not None:
                continue
            if index < len(previous) and previous[index].guid not in claimed:
                guid = previous[index].guid
            else:
                guid = str(uuid.uuid4())
            assigned[index] = guid
            claimed.add(guid)
        return [guid for guid in assigned if guid is not None]

    def _evict_missing(self, key: str, present: set[str]) -> None:
        misses = self._misses.setdefault(key, {})
        for guid in present:
            misses.pop(guid, None)
        known = [obj for obj in self._objects.values() if obj.datasource_key == key]
        for obj in known:
            if obj.guid in present or obj.is_dynamic:
                continue
            count = misses.get(obj.guid, 0) + 1
            if count >= self.evict_after_misses:
                misses.pop(obj.guid, None)
                self._objects.pop(obj.guid, None)
                logger.debug("datasource %s: evicted %s", key, obj.guid)
            else:
                misses[obj.guid] = count

    # --- mx.data surface -----------------------------------------------------
    def get(self, guid: str, callback: Optional[Callable] = None, error: Optional[Callable] = None) -> None:
        obj = self._objects.get(str(guid))
        if obj is None:
            self._fail(error, ObjectNotFoundError(str(guid)))
            return
        if callback is not None:
            callback(obj)

    def create(self, entity: str, callback: Optional[Callable] = None, error: Optional[Callable] = None) -> None:
        datasource = self._datasource_for_entity(entity)
        if datasource is None:
            self._fail(error, MockDataOperationError(f"No datasource available for entity '{entity}'"))
            return
        obj = MockObject(
            str(uuid.uuid4()),
            datasource.entity_name,
            datasource.blank_record(),
            datasource_key=datasource.key,
            is_new=True,
            is_dynamic=True,
        )
        self._objects[obj.guid] = obj
        datasource.items.append(obj)
        self._emit(datasource.key)
        if callback is not None:
            callback(obj)

    def commit(self, mxobj: Any, callback: Optional[Callable] = None, error: Optional[Callable] = None) -> None:
        guid = mxobj.get_guid() if isinstance(mxobj, MockObject) else str(mxobj)
        stored = self._objects.get(guid)
        datasource = self._datasources.get(stored.datasource_key) if stored is not None else None
        if stored is None or datasource is None:
            self._fail(error, ObjectNotFoundError(guid))
            return
        if isinstance(mxobj, MockObject) and mxobj is not stored:
            stored.data = dict(mxobj.data)
        if stored not in datasource.items:
            datasource.items.append(stored)
        stored.is_new = False
        self._emit(datasource.key)
        if callback is not None:
            callback()

    def remove(self, guid: Any, callback: Optional[Callable] = None, error: Optional[Callable] = None) -> None:
        guid = guid.get_guid() if isinstance(guid, MockObject) else str(guid)
        obj = self._objects.pop(guid, None)
        if obj is None:
            self._fail(error, ObjectNotFoundError(guid))
            return
        key = obj.datasource_key
        datasource = self._datasources.get(key) if key is not None else None
        if datasource is not None:
            datasource.items = [item for item in datasource.items if item.guid != guid]
            self._misses.get(key, {}).pop(guid, None)
            self._emit(datasource.key)
        if callback is not None:
            callback()

    def action(
        self,
        action_name: str,
        params: Optional[Dict[str, Any]] = None,
        callback: Optional[Callable] = None,
        error: Optional[Callable] = None,
    ) -> None:
        logger.info("mock action %s called with %s", action_name, params or {})
        if callback is not None:
            callback(None)

    # --- helpers -------------------------------------------------------------
    def _datasource_for_entity(self, entity: str) -> Optional[Datasource]:
        for datasource in self._datasources.values():
            if datasource.entity_name == entity:
                return datasource
        for datasource in self._datasources.values():
            return datasource
        return None

    def _emit(self, key: str) -> None:
        if self._commit_sink is None:
            return
        self._commit_sink(key, self.records(key))

    @staticmethod
    def _fail(error: Optional[Callable], exc: MockDataOperationError) -> None:
        if error is not None:
            error(exc)
        else:
            logger.warning("mock data operation failed without error callback: %s", exc)
