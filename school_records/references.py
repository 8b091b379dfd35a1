"""
Reference population for response shaping.

A stored foreign key becomes either ``Unexpanded(id)`` (the referenced record
is missing) or ``Expanded(id, summary)``. Only ``serialize_reference`` looks
inside; everything else passes references through untouched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase


@dataclass(frozen=True)
class Unexpanded:
    id: str


@dataclass(frozen=True)
class Expanded:
    id: str
    summary: Dict[str, Any] = field(default_factory=dict)


Reference = Union[Unexpanded, Expanded]


@dataclass(frozen=True)
class Populate:
    """Look a foreign key up in ``collection``, keeping only ``projection``."""

    collection: str
    projection: Tuple[str, ...]


def serialize_reference(ref: Reference) -> Union[str, Dict[str, Any]]:
    if isinstance(ref, Expanded):
        return {"id": ref.id, **ref.summary}
    return ref.id


def _ids(value: Any) -> List[ObjectId]:
    if isinstance(value, ObjectId):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, ObjectId)]
    return []


def _wrap(value: Any, found: Mapping[ObjectId, Dict[str, Any]]) -> Any:
    if isinstance(value, list):
        return [_wrap(v, found) for v in value]
    if not isinstance(value, ObjectId):
        return value
    summary = found.get(value)
    if summary is None:
        return Unexpanded(str(value))
    return Expanded(str(value), summary)


async def populate(
    db: AsyncIOMotorDatabase, docs: Sequence[Dict[str, Any]], targets: Mapping[str, Populate]
) -> List[Dict[str, Any]]:
    """Replace the foreign keys named in ``targets`` with references, one query per target."""
    out = [dict(d) for d in docs]
    for name, target in targets.items():
        wanted = {oid for d in out for oid in _ids(d.get(name))}
        found: Dict[ObjectId, Dict[str, Any]] = {}
        if wanted:
            projection = {f: 1 for f in target.projection}
            cursor = db[target.collection].find({"_id": {"$in": list(wanted)}}, projection)
            for ref_doc in await cursor.to_list(length=None):
                found[ref_doc["_id"]] = {f: ref_doc.get(f, "") for f in target.projection}
        for d in out:
            if name in d:
                d[name] = _wrap(d[name], found)
    return out


def serialize(doc: Mapping[str, Any], hidden: Iterable[str] = ()) -> Dict[str, Any]:
    """Turn a stored (and optionally populated) document into a JSON-ready dict."""
    hidden = set(hidden)
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key in hidden:
            continue
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = _plain(value)
    return out


def _plain(value: Any) -> Any:
    if isinstance(value, (Unexpanded, Expanded)):
        return serialize_reference(value)
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value
