"""
Structured logging for the ledger service

Every record is written to stdout as a single JSON document. Besides the
service identity each document carries:

- ``trace``: the request and correlation ids of the HTTP request being served
- ``ledger``: order, customer and product ids plus the failure kind, lifted out
  of ``extra_fields`` so log queries can filter on them directly
- ``custom``: whatever else the caller passed in ``extra_fields``
"""

import json
import logging
import re
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Keys promoted from extra_fields into the "ledger" block
LEDGER_FIELDS = ('order_id', 'customer_id', 'product_id', 'kind', 'retryable')

def current_trace() -> Dict[str, str]:
    trace = {}
    if request_id_var.get():
        trace['request_id'] = request_id_var.get()
    if correlation_id_var.get():
        trace['correlation_id'] = correlation_id_var.get()
    return trace

class StructuredFormatter(logging.Formatter):
    """Renders records as JSON tagged with the service identity"""

    def __init__(self, service_name: str, version: str, environment: str):
        super().__init__()
        self.service_name = service_name
        self.version = version
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "@timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "version": self.version,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        trace = getattr(record, 'trace', None) or current_trace()
        if trace:
            doc["trace"] = trace

        fields = dict(getattr(record, 'extra_fields', None) or {})
        ledger = {key: fields.pop(key) for key in LEDGER_FIELDS if key in fields}
        if ledger:
            doc["ledger"] = ledger
        if fields:
            doc["custom"] = fields

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            doc["error"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "cause": repr(exc.__cause__) if exc.__cause__ else None,
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(doc, default=str)

class CredentialFilter(logging.Filter):
    """Masks the password in database URLs that leak into messages, e.g. via a connection error"""

    DSN_PASSWORD = re.compile(r'(\w+(?:\+\w+)?://[^:/@\s]+:)[^@\s]+@')

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str) and '://' in record.msg:
            record.msg = self.DSN_PASSWORD.sub(r'\1***@', record.msg)
        return True

def setup_logging(
    service_name: str,
    level: str = "INFO",
    version: str = "1.0.0",
    environment: str = "development",
) -> None:
    """
    Route all loggers through the JSON formatter on stdout

    Args:
        service_name: Name reported in every record
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        version: Service version reported in every record
        environment: Deployment environment (development/staging/production)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(service_name, version, environment))
    handler.addFilter(CredentialFilter())
    root_logger.addHandler(handler)

    # SQL echo and access logs would duplicate the request log
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'level': level}}
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Snapshots the request trace onto the record when the call is made"""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra') or {})
        trace = current_trace()
        if trace:
            extra.setdefault('trace', trace)
        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})

def set_request_context(request_id: Optional[str] = None, correlation_id: Optional[str] = None) -> None:
    request_id_var.set(request_id)
    correlation_id_var.set(correlation_id or request_id)

def generate_request_id() -> str:
    return uuid.uuid4().hex

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and returns X-Request-ID to the caller"""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        set_request_context(request_id, request.headers.get('X-Correlation-ID'))

        logger = get_logger(__name__)
        started = time.perf_counter()
        fields = {'method': request.method, 'path': request.url.path}

        try:
            response = await call_next(request)
        except Exception:
            fields['duration_ms'] = round((time.perf_counter() - started) * 1000, 2)
            logger.error(
                f"{request.method} {request.url.path} failed",
                exc_info=True,
                extra={'extra_fields': fields}
            )
            raise

        fields['status_code'] = response.status_code
        fields['duration_ms'] = round((time.perf_counter() - started) * 1000, 2)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, f"{request.method} {request.url.path} -> {response.status_code}", extra={'extra_fields': fields})

        response.headers['X-Request-ID'] = request_id
        return response
