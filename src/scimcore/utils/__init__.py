from .logging import logger, get_logger, setup_logging, console
from .pagination import PaginationParams
from .etag import generate_etag, validate_etag
from .filter_parser import SCIMFilterParser, parse_attribute_path
from .scim_path_parser import parse_scim_path, SCIMPath
from .attribute_filter import AttributeFilter

__all__ = [
    "logger",
    "get_logger",
    "setup_logging",
    "console",
    "PaginationParams",
    "generate_etag",
    "validate_etag",
    "SCIMFilterParser",
    "parse_attribute_path",
    "parse_scim_path",
    "SCIMPath",
    "AttributeFilter",
]
