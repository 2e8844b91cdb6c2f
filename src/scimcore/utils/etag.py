import hashlib
import json
from typing import Any, Dict, Optional


def generate_etag(document: Dict[str, Any], revision: int) -> str:
    """Weak entity tag over the resource content and its revision counter.

    The revision keeps the tag moving even when a mutation leaves the content
    unchanged (e.g. a PATCH that re-applies the stored values).
    """
    data_copy = dict(document)
    # Remove volatile fields
    data_copy.pop("meta", None)
    json_str = json.dumps(data_copy, sort_keys=True, default=str)
    digest = hashlib.md5(f"{revision}:{json_str}".encode()).hexdigest()
    return f'W/"{digest}"'


def _opaque(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip('"')


def validate_etag(
    request_etag: Optional[str],
    resource_etag: Optional[str],
    if_match: bool = True
) -> bool:
    if not request_etag or not resource_etag:
        return True

    # If-Match may carry a comma-separated list of tags
    candidates = [_opaque(tag) for tag in request_etag.split(",") if tag.strip()]
    current = _opaque(resource_etag)

    if if_match:
        # If-Match: proceed only if ETags match
        return "*" in candidates or current in candidates
    else:
        # If-None-Match: proceed only if ETags don't match
        return "*" not in candidates and current not in candidates
