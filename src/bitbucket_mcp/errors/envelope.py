"""Uniform error envelope raised by every controller."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, NoReturn, Optional, Union

from .classifier import ErrorKind, classify_error, decode_error_payload, error_message

logger = logging.getLogger(__name__)

MAX_UNWRAP_DEPTH = 10

EntityId = Union[str, Mapping[str, Any]]


@dataclass(frozen=True)
class ErrorContext:
    """What was being attempted when an upstream call failed."""

    entity_type: str
    operation: str
    source: str
    entity_id: Optional[EntityId] = None
    additional_info: Optional[Dict[str, Any]] = None

    @property
    def entity_label(self) -> str:
        if self.entity_id is None:
            return self.entity_type
        if isinstance(self.entity_id, Mapping):
            return f"{self.entity_type} {'/'.join(str(v) for v in self.entity_id.values())}"
        return f"{self.entity_type} {self.entity_id}"


class ErrorEnvelope(Exception):
    """A classified failure carrying its kind, HTTP status and original cause.

    Instances are immutable. ``source``, ``entity_type``, ``operation`` and
    ``additional_info`` are kept for logging only.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        http_status: Optional[int] = None,
        cause: Any = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._http_status = http_status
        self._cause = cause
        self._context = context

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def http_status(self) -> Optional[int]:
        return self._http_status

    @property
    def cause(self) -> Any:
        return self._cause

    @property
    def context(self) -> Optional[ErrorContext]:
        return self._context

    @property
    def source(self) -> Optional[str]:
        return self._context.source if self._context else None

    @property
    def entity_type(self) -> Optional[str]:
        return self._context.entity_type if self._context else None

    @property
    def operation(self) -> Optional[str]:
        return self._context.operation if self._context else None

    @property
    def additional_info(self) -> Optional[Dict[str, Any]]:
        return self._context.additional_info if self._context else None

    def __repr__(self) -> str:
        return f"ErrorEnvelope(kind={self._kind.value}, http_status={self._http_status}, message={self._message!r})"


def get_deep_original_error(error: Any) -> Any:
    """Unwrap nested ``original_error`` / ``cause`` links down to the vendor error."""
    current = error
    for _ in range(MAX_UNWRAP_DEPTH):
        if isinstance(current, ErrorEnvelope):
            nested = current.cause
        else:
            nested = getattr(current, "original_error", None)
        if nested is None:
            break
        current = nested
    return current


def build_error_envelope(error: Any, context: ErrorContext) -> ErrorEnvelope:
    """Classify ``error`` and wrap it with the operation context.

    The message reads ``"Failed to <operation> <entity_type>: <reason>"``.
    Never raises.
    """
    classification = classify_error(error)
    logger.debug(
        "Classified error from %s as %s (status %d)",
        context.source,
        classification.kind.value,
        classification.status_code,
    )

    payload = decode_error_payload(error)
    detail = payload.text if payload and payload.text else error_message(error)
    reason = _reason(classification.kind, context, detail)
    message = f"Failed to {context.operation} {context.entity_type}: {reason}"

    logger.error(
        "Error while trying to %s %s [%s]: %s",
        context.operation,
        context.entity_label,
        context.source,
        detail or classification.kind.value,
        extra={"additional_info": context.additional_info},
    )

    return ErrorEnvelope(
        kind=classification.kind,
        message=message,
        http_status=classification.status_code,
        cause=error,
        context=context,
    )


def handle_controller_error(error: Any, context: ErrorContext) -> NoReturn:
    """Raise ``error`` as an ``ErrorEnvelope``.

    An error that already is an envelope is re-raised unchanged so nested
    controllers keep the innermost context.
    """
    if isinstance(error, ErrorEnvelope):
        raise error
    envelope = build_error_envelope(error, context)
    if isinstance(error, BaseException):
        raise envelope from error
    raise envelope


def _reason(kind: ErrorKind, context: ErrorContext, detail: str) -> str:
    entity = context.entity_label
    if kind is ErrorKind.NOT_FOUND:
        return (
            f"{entity} not found. Verify that the workspace and identifiers are spelled "
            f"correctly and that you have access to it."
        )
    if kind is ErrorKind.ACCESS_DENIED:
        return (
            f"access denied for {entity}. Verify that your Atlassian API token or Bitbucket "
            f"app password is valid, has not expired and has sufficient permissions."
        )
    if kind is ErrorKind.VALIDATION_ERROR:
        return detail or f"invalid data provided for {entity}."

    if kind is ErrorKind.RATE_LIMIT_ERROR:
        reason = "API rate limit exceeded. Wait a moment and try again, or reduce the request rate."
    elif kind is ErrorKind.NETWORK_ERROR:
        reason = "network error while contacting the Atlassian API. Check your connection and try again."
    else:
        reason = f"an unexpected error occurred while processing {entity}."
    if detail:
        reason += f" Error details: {detail}"
    return reason
