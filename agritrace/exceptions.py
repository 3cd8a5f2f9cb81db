"""agritrace ledger errors.

Every way a ledger operation can be refused has its own exception class.
A refusal is raised before the operation writes anything: no fee intent is
handed to the sink, no id is allocated and no history entry is appended.
Engine callers catch these exceptions directly; ``ProvenanceLedgerService``
catches ``LedgerException`` and turns it into a failed ``OperationResult``
carrying ``error_code``, ``error_type``, ``message`` and ``context``.

Exception Hierarchy:
    LedgerException (base)
    ├── AuthorityNotSet
    ├── AuthorityAlreadySet
    ├── Unauthorized
    ├── NotFound
    ├── InvalidInput
    │   └── InvalidExpiry
    ├── InvalidState
    │   ├── AlreadyCertified
    │   ├── BatchInactive
    │   └── TransferInProgress
    ├── CapacityExceeded
    ├── DuplicateApproval
    ├── Expired
    └── FeeTransferFailed

Error codes are derived from the class name: ``BatchInactive`` is
``TRACE_BATCH_INACTIVE``. Subclasses that take keyword details (``field``,
``caller``, ``record_id``, ...) copy them into ``context`` so they survive
the trip into an OperationResult.

Example:
    >>> from agritrace.exceptions import InvalidInput
    >>> raise InvalidInput(
    ...     message="Title must be 1-100 characters",
    ...     field="title",
    ...     ledger="batch_registry",
    ... )
"""

from typing import Any, Dict, Optional
from datetime import datetime
import json
import re


# ==============================================================================
# Base Exception
# ==============================================================================

class LedgerException(Exception):
    """A ledger operation was refused.

    Attributes:
        message: Why the operation was refused
        error_code: ``TRACE_`` code of the refusal (e.g. "TRACE_UNAUTHORIZED")
        ledger: Ledger that refused it; None for facade-level refusals
        context: Offending values (field, caller, record id, limit, ...)
        timestamp: Wall-clock time of the refusal, for logs only
    """

    ERROR_PREFIX = "TRACE"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            message: Why the operation was refused
            error_code: Overrides the code derived from the class name
            ledger: Ledger that refused the operation
            context: Offending values
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.ledger = ledger
        self.context = context or {}
        self.timestamp = datetime.now()

    def _generate_error_code(self) -> str:
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the refusal for a log record or an API response."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "ledger": self.ledger,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """``to_dict`` as JSON; non-JSON context values are stringified."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        parts = [f"[{self.error_code}]"]
        if self.ledger:
            parts.append(f"Ledger: {self.ledger}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"ledger='{self.ledger}')"
        )


# ==============================================================================
# Authority
# ==============================================================================

class AuthorityNotSet(LedgerException):
    """No governing authority has been recorded for the ledger yet."""
    pass


class AuthorityAlreadySet(LedgerException):
    """The governing authority is single-assignment and already recorded.

    Example:
        >>> raise AuthorityAlreadySet(
        ...     message="Authority already set",
        ...     ledger="shipment_ledger",
        ...     context={"authority": "ST2AUTH"},
        ... )
    """
    pass


class Unauthorized(LedgerException):
    """The caller is not the principal allowed to perform the action."""

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        caller: Optional[str] = None,
        expected: Optional[str] = None,
    ):
        """``caller`` and ``expected`` land in ``context`` under the same keys."""
        context = context or {}
        if caller is not None:
            context["caller"] = caller
        if expected is not None:
            context["expected"] = expected
        super().__init__(message, ledger=ledger, context=context)


class NotFound(LedgerException):
    """A referenced record (or, at the facade, ledger name) does not exist."""

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        record_type: Optional[str] = None,
        record_id: Optional[Any] = None,
    ):
        """
        Args:
            record_type: batch, shipment, transfer, certification or ledger
            record_id: The id (or ledger name) that was looked up
        """
        context = context or {}
        if record_type is not None:
            context["record_type"] = record_type
        if record_id is not None:
            context["record_id"] = record_id
        super().__init__(message, ledger=ledger, context=context)


# ==============================================================================
# Input validation
# ==============================================================================

class InvalidInput(LedgerException):
    """A length, range or format rule on an input field was violated.

    Example:
        >>> raise InvalidInput(
        ...     message="Batch size must be in (0, 10000]",
        ...     field="batch_size",
        ...     ledger="batch_registry",
        ...     context={"value": 0},
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """``field`` names the argument, as the operation spells it."""
        context = context or {}
        if field is not None:
            context["field"] = field
        self.field = field
        super().__init__(message, ledger=ledger, context=context)


class InvalidExpiry(InvalidInput):
    """Certification expiry is not after the current ledger time."""

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, field="expiry", ledger=ledger, context=context)


# ==============================================================================
# State machine
# ==============================================================================

class InvalidState(LedgerException):
    """The record's current state forbids the attempted operation."""

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        current_state: Optional[str] = None,
        required_state: Optional[str] = None,
    ):
        """States are given by their labels, e.g. "pending" or "in-transit"."""
        context = context or {}
        if current_state is not None:
            context["current_state"] = current_state
        if required_state is not None:
            context["required_state"] = required_state
        super().__init__(message, ledger=ledger, context=context)


class AlreadyCertified(InvalidState):
    """The batch already carries a certification."""
    pass


class BatchInactive(InvalidState):
    """The batch has been deactivated."""
    pass


class TransferInProgress(InvalidState):
    """The transfer is not in the state the action expects."""
    pass


# ==============================================================================
# Capacity, approvals, expiry, fees
# ==============================================================================

class CapacityExceeded(LedgerException):
    """A ledger or per-record capacity ceiling has been reached."""

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ):
        context = context or {}
        if limit is not None:
            context["limit"] = limit
        super().__init__(message, ledger=ledger, context=context)


class DuplicateApproval(LedgerException):
    """The (shipment, approver) pair already has an approval entry."""
    pass


class Expired(LedgerException):
    """The batch certification is absent, revoked or past its expiry."""
    pass


class FeeTransferFailed(LedgerException):
    """The value-transfer sink rejected the fee intent.

    Example:
        >>> raise FeeTransferFailed(
        ...     message="Fee transfer rejected",
        ...     ledger="transfer_ledger",
        ...     context={"amount": 300, "cause": "insufficient funds"},
        ... )
    """

    def __init__(
        self,
        message: str,
        ledger: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        context = context or {}
        if cause is not None:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        super().__init__(message, ledger=ledger, context=context)


__all__ = [
    "LedgerException",
    "AuthorityNotSet",
    "AuthorityAlreadySet",
    "Unauthorized",
    "NotFound",
    "InvalidInput",
    "InvalidExpiry",
    "InvalidState",
    "AlreadyCertified",
    "BatchInactive",
    "TransferInProgress",
    "CapacityExceeded",
    "DuplicateApproval",
    "Expired",
    "FeeTransferFailed",
]
