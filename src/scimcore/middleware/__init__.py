from .error_handler import ErrorHandlerMiddleware
from .request_logger import RequestLoggingMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestLoggingMiddleware",
]
