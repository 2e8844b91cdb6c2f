"""
SCIM Path Parser for RFC 7644 compliant path parsing.

Supports:
- Simple paths: "userName", "name.givenName"
- ValuePath with filters: "emails[type eq \"work\"].value"
- Complex filters: "members[value eq \"user-id\"]"
- Extension attributes: "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User:manager"
- Whole extension objects: "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"
"""

from typing import Optional, Sequence
from dataclasses import dataclass
from scimcore.exceptions import MalformedFilter, MalformedPath
from .filter_parser import ATTRIBUTE_NAME_RE, Expression, SCIMFilterParser, parse_attribute_path


@dataclass
class SCIMPath:
    """Represents a parsed SCIM path"""
    attribute: Optional[str]  # Main attribute name (e.g., "emails", "name"); None targets a whole extension
    filter_expr: Optional[Expression] = None  # Parsed value filter (e.g., type eq "work")
    sub_attribute: Optional[str] = None  # Sub-attribute if present (e.g., "value", "givenName")
    schema_uri: Optional[str] = None  # Schema URI if fully qualified
    raw: str = ""


def parse_scim_path(path: str, schema_uris: Sequence[str] = ()) -> SCIMPath:
    """
    Parse a SCIM path according to RFC 7644.

    Examples:
        "userName" -> SCIMPath(attribute="userName")
        "name.givenName" -> SCIMPath(attribute="name", sub_attribute="givenName")
        "emails[type eq \"work\"].value" -> SCIMPath(attribute="emails", filter_expr=<type eq "work">, sub_attribute="value")

    Args:
        path: The SCIM path to parse
        schema_uris: Known schema URIs, used to recognise a path naming a whole extension
            and to canonicalise the case of URN prefixes

    Returns:
        SCIMPath object with parsed components

    Raises:
        MalformedPath: If the path is invalid
    """
    if not path or not path.strip():
        raise MalformedPath(path, "path cannot be empty")
    path = path.strip()

    for uri in schema_uris:
        if path.lower() == uri.lower():
            return SCIMPath(attribute=None, schema_uri=uri, raw=path)

    head, filter_text, tail = _split_value_filter(path)

    try:
        attr_path = parse_attribute_path(head)
    except ValueError as e:
        raise MalformedPath(path, str(e))

    schema_uri = attr_path.schema_uri
    if schema_uri:
        schema_uri = next((uri for uri in schema_uris if uri.lower() == schema_uri.lower()), schema_uri)

    if filter_text is None:
        return SCIMPath(
            attribute=attr_path.attribute,
            sub_attribute=attr_path.sub_attribute,
            schema_uri=schema_uri,
            raw=path,
        )

    if attr_path.sub_attribute:
        raise MalformedPath(path, "a value filter must follow a top-level attribute")

    try:
        filter_expr = SCIMFilterParser().parse(filter_text)
    except MalformedFilter as e:
        raise MalformedPath(path, e.detail)

    sub_attribute = tail or None
    if sub_attribute is not None and not ATTRIBUTE_NAME_RE.match(sub_attribute):
        raise MalformedPath(path, f"invalid sub-attribute '{sub_attribute}'")

    return SCIMPath(
        attribute=attr_path.attribute,
        filter_expr=filter_expr,
        sub_attribute=sub_attribute,
        schema_uri=schema_uri,
        raw=path,
    )


def _split_value_filter(path: str):
    """Split ``attr[filter].sub`` into its three parts, honouring quoted brackets."""
    start = path.find("[")
    if start == -1:
        if "]" in path:
            raise MalformedPath(path, "unbalanced ']'")
        return path, None, ""

    in_string = False
    escaped = False
    for index in range(start + 1, len(path)):
        char = path[index]
        if escaped:
            escaped = False
        elif char == "\\" and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif char == "[" and not in_string:
            raise MalformedPath(path, "value filters cannot be nested")
        elif char == "]" and not in_string:
            tail = path[index + 1:]
            if tail and (not tail.startswith(".") or tail == "."):
                raise MalformedPath(path, f"unexpected '{tail}' after value filter")
            filter_text = path[start + 1:index]
            if not filter_text.strip():
                raise MalformedPath(path, "value filter is empty")
            return path[:start], filter_text, tail[1:]

    raise MalformedPath(path, "missing ']'")
