"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_request_id: ContextVar[str] = ContextVar("request_id", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_credential_kind: ContextVar[str] = ContextVar("credential_kind", default="")
_environment: ContextVar[str] = ContextVar("environment", default="")


def set_log_context(
    request_id: Optional[str] = None,
    operation: Optional[str] = None,
    credential_kind: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    if request_id is not None:
        _request_id.set(request_id)
    if operation is not None:
        _operation.set(operation)
    if credential_kind is not None:
        _credential_kind.set(credential_kind)
    if environment is not None:
        _environment.set(environment)


def get_log_context() -> Dict[str, str]:
    return {
        "request_id": _request_id.get(),
        "operation": _operation.get(),
        "credential_kind": _credential_kind.get(),
        "environment": _environment.get(),
    }


def clear_log_context() -> None:
    _request_id.set("")
    _operation.set("")
    _credential_kind.set("")
    _environment.set("")
