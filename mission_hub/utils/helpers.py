"""
Document helpers shared by services and routers
"""

from datetime import datetime
from typing import Dict, Any, Iterable, List, Optional
from bson import ObjectId
from bson.errors import InvalidId

from .errors import NotFoundError


def parse_object_id(value: str, entity: str = "Document") -> ObjectId:
    """Convert an id string to ObjectId; malformed ids are reported as missing"""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{entity} {value} not found")


def unique_ids(ids: Iterable[str]) -> List[str]:
    """De-duplicate while keeping request order"""
    seen = set()
    result = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def clamp_progress(value: float) -> float:
    return max(0, min(100, value))


def _iso(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    return value.isoformat() if isinstance(value, datetime) else value


def serialize_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Turn a Mongo document into JSON-friendly data (id string, ISO dates)"""
    if doc is None:
        return None

    result = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        elif isinstance(value, dict):
            result[key] = serialize_document(value)
        elif isinstance(value, list):
            result[key] = [
                serialize_document(item) if isinstance(item, dict) else _iso(item)
                for item in value
            ]
        else:
            result[key] = _iso(value)
    return result
