"""Error classification and the uniform error envelope."""

from .classifier import (
    Classification,
    ErrorKind,
    ErrorPayload,
    PayloadShape,
    classify_error,
    decode_error_payload,
)
from .envelope import (
    ErrorContext,
    ErrorEnvelope,
    build_error_envelope,
    get_deep_original_error,
    handle_controller_error,
)

__all__ = [
    "Classification",
    "ErrorContext",
    "ErrorEnvelope",
    "ErrorKind",
    "ErrorPayload",
    "PayloadShape",
    "build_error_envelope",
    "classify_error",
    "decode_error_payload",
    "get_deep_original_error",
    "handle_controller_error",
]
