"""Maps platform write errors onto the migration error categories."""

import logging
from typing import Iterable, List, Optional, Tuple

from ..clients.exceptions import ApiLimitError, InstanceError
from ..models.record import ApiError, ErrorCode, WriteResult

logger = logging.getLogger(__name__)

# Platform status codes, checked in the order errors are reported
STATUS_CODE_CATEGORIES = {
    "REQUIRED_FIELD_MISSING": ErrorCode.REQUIRED_FIELD_MISSING,
    "INVALID_TYPE_ON_FIELD_IN_RECORD": ErrorCode.FIELD_TYPE_MISMATCH,
    "INVALID_FIELD_FOR_INSERT_UPDATE": ErrorCode.FIELD_TYPE_MISMATCH,
    "JSON_PARSER_ERROR": ErrorCode.FIELD_TYPE_MISMATCH,
    "STRING_TOO_LONG": ErrorCode.FIELD_TYPE_MISMATCH,
    "NUMBER_OUTSIDE_VALID_RANGE": ErrorCode.FIELD_TYPE_MISMATCH,
    "INVALID_OR_NULL_FOR_RESTRICTED_PICKLIST": ErrorCode.FIELD_TYPE_MISMATCH,
    "INVALID_FIELD": ErrorCode.FIELD_TYPE_MISMATCH,
    "FIELD_CUSTOM_VALIDATION_EXCEPTION": ErrorCode.VALIDATION_RULE_FAILED,
    "FIELD_FILTER_VALIDATION_EXCEPTION": ErrorCode.VALIDATION_RULE_FAILED,
    "FIELD_INTEGRITY_EXCEPTION": ErrorCode.VALIDATION_RULE_FAILED,
    "CANNOT_EXECUTE_FLOW_TRIGGER": ErrorCode.VALIDATION_RULE_FAILED,
    "INVALID_CROSS_REFERENCE_KEY": ErrorCode.LOOKUP_NOT_FOUND,
    "INVALID_ID_FIELD": ErrorCode.LOOKUP_NOT_FOUND,
    "ENTITY_IS_DELETED": ErrorCode.LOOKUP_NOT_FOUND,
    "REQUEST_LIMIT_EXCEEDED": ErrorCode.API_LIMIT_EXCEEDED,
    "TOO_MANY_REQUESTS": ErrorCode.API_LIMIT_EXCEEDED,
    "INSUFFICIENT_ACCESS": ErrorCode.PERMISSION_DENIED,
    "INSUFFICIENT_ACCESS_OR_READONLY": ErrorCode.PERMISSION_DENIED,
    "INSUFFICIENT_ACCESS_ON_CROSS_REFERENCE_ENTITY": ErrorCode.PERMISSION_DENIED,
    "CANNOT_INSERT_UPDATE_ACTIVATE_ENTITY": ErrorCode.PERMISSION_DENIED,
    "FIELD_NOT_UPDATEABLE": ErrorCode.PERMISSION_DENIED,
    "DUPLICATE_VALUE": ErrorCode.DUPLICATE_VALUE,
    "DUPLICATES_DETECTED": ErrorCode.DUPLICATE_VALUE,
    "DUPLICATE_EXTERNAL_ID": ErrorCode.DUPLICATE_VALUE,
}

# Fallback when a status code is absent or unknown
MESSAGE_KEYWORDS: List[Tuple[str, ErrorCode]] = [
    ("required field", ErrorCode.REQUIRED_FIELD_MISSING),
    ("required fields are missing", ErrorCode.REQUIRED_FIELD_MISSING),
    ("invalid type", ErrorCode.FIELD_TYPE_MISMATCH),
    ("data value too large", ErrorCode.FIELD_TYPE_MISMATCH),
    ("validation", ErrorCode.VALIDATION_RULE_FAILED),
    ("cross-reference", ErrorCode.LOOKUP_NOT_FOUND),
    ("cross reference", ErrorCode.LOOKUP_NOT_FOUND),
    ("lookup", ErrorCode.LOOKUP_NOT_FOUND),
    ("request limit", ErrorCode.API_LIMIT_EXCEEDED),
    ("rate limit", ErrorCode.API_LIMIT_EXCEEDED),
    ("insufficient access", ErrorCode.PERMISSION_DENIED),
    ("permission", ErrorCode.PERMISSION_DENIED),
    ("duplicate", ErrorCode.DUPLICATE_VALUE),
]

HTTP_STATUS_CATEGORIES = {
    403: ErrorCode.PERMISSION_DENIED,
    429: ErrorCode.API_LIMIT_EXCEEDED,
}


def categorize_errors(
    errors: Iterable[ApiError],
    http_status: Optional[int] = None,
) -> Tuple[ErrorCode, Optional[str]]:
    """
    Pick the category for a list of platform errors.

    Returns:
        (category, raw platform status code of the deciding error)
    """
    errors = list(errors)

    for error in errors:
        code = STATUS_CODE_CATEGORIES.get(error.status_code)
        if code:
            return code, error.status_code

    if http_status in HTTP_STATUS_CATEGORIES:
        raw = errors[0].status_code if errors else None
        return HTTP_STATUS_CATEGORIES[http_status], raw or str(http_status)

    for error in errors:
        message = error.message.lower()
        for keyword, code in MESSAGE_KEYWORDS:
            if keyword in message:
                return code, error.status_code or None

    raw = errors[0].status_code if errors else None
    if raw:
        logger.debug(f"Uncategorized platform error {raw}")
    return ErrorCode.UNKNOWN_ERROR, raw or None


def categorize_result(result: WriteResult) -> Tuple[ErrorCode, str, Optional[str]]:
    """Category, message and raw code for a failed WriteResult."""
    code, raw = categorize_errors(result.errors, result.http_status)
    message = result.message or (f"HTTP {result.http_status}" if result.http_status else "Unknown error")
    return code, message, raw


def categorize_exception(error: Exception) -> Tuple[ErrorCode, str, Optional[str]]:
    """Category, message and raw code for a request that failed as a whole."""
    if isinstance(error, ApiLimitError):
        return ErrorCode.API_LIMIT_EXCEEDED, str(error), str(error.status or "")
    if isinstance(error, InstanceError):
        code, raw = categorize_errors(error.errors, error.status)
        return code, str(error), raw
    return ErrorCode.UNKNOWN_ERROR, str(error), None


def error_fields(result: WriteResult) -> List[str]:
    """Field names the platform blamed for a failure."""
    fields = []
    for error in result.errors:
        for name in error.fields:
            if name not in fields:
                fields.append(name)
    return fields
