# Configuración de logging para SquadFinders: texto plano o JSON para Loki

import logging
import json
import sys
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Optional

# Context variable para correlacionar logs de un mismo request
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'message', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
}

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StructuredFormatter(logging.Formatter):
    """
    Formatter que genera logs estructurados en JSON para mejor parsing en Loki
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        req_id = request_id_var.get('')
        if req_id:
            log_entry['request_id'] = req_id

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Campos extra pasados con logger.info(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = False, stream=None) -> None:
    """
    Configura el logger raíz una sola vez (stdout, recogido por el contenedor).

    Args:
        level: Nivel de log (DEBUG, INFO, ...)
        json_logs: True para salida JSON estructurada
    """
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()

    # Limpiar handlers existentes
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(log_level)

    # Librerías ruidosas
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_request_id(value: Optional[str]) -> None:
    request_id_var.set(value or '')
