import logging
import uuid
from contextvars import ContextVar

# Context variable storing request_id for the current request
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject request_id into all log records
        record.request_id = request_id_ctx.get("-")
        return True


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]
