from .base import ErrorType, RequestError, ErrorList, get_errors, record_error

__all__ = ["ErrorType", "RequestError", "ErrorList", "get_errors", "record_error"]
