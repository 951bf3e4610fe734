"""Context managers for structured logging."""

import time
import uuid
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(operation="get_fulfillment_policies", credential_kind="user_access"):
            # All logs in this block carry operation and credential_kind
            await client.get(...)
    """

    def __init__(
        self,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        credential_kind: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.new_context = {
            "request_id": request_id,
            "operation": operation,
            "credential_kind": credential_kind,
            "environment": environment,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self.old_context)
        return False


class RequestLogContext(LogContext):
    """
    Log context for one outbound API request, with a generated request_id and timing.

    Usage:
        with RequestLogContext("GET /sell/account/v1/return_policy") as ctx:
            response = await executor.execute(kind, spec)
            ctx.set_result(http_status=response.status)
    """

    def __init__(self, operation: str, credential_kind: Optional[str] = None):
        super().__init__(
            request_id=uuid.uuid4().hex[:12],
            operation=operation,
            credential_kind=credential_kind,
        )
        self.start_time: Optional[float] = None
        self.result_context: Dict[str, Any] = {}

    def __enter__(self) -> "RequestLogContext":
        super().__enter__()
        self.start_time = time.perf_counter()
        return self

    def set_result(self, **kwargs: Any) -> None:
        """Set result context to be read after exit."""
        self.result_context.update(kwargs)

    @property
    def request_id(self) -> str:
        return self.new_context["request_id"] or ""

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000
        self.result_context["duration_ms"] = round(duration_ms, 2)
        super().__exit__(exc_type, exc_val, exc_tb)
        return False
