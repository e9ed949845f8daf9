"""
Structured Logging Configuration

Provides JSON-formatted logging with:
- Sync run tracking (sync_run_id context)
- Pair context (unit / platform)
- Performance metrics
- Structured output for log aggregation
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

# Context variable for the sync run currently being processed by this worker
sync_run_id_var: ContextVar[str] = ContextVar('sync_run_id', default='')


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs logs in JSON format for easy parsing by log aggregators.
    """
    
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        sync_run_id = sync_run_id_var.get()
        if sync_run_id:
            log_data["sync_run_id"] = sync_run_id
        
        # Add location info
        log_data["module"] = record.module
        log_data["function"] = record.funcName
        log_data["line"] = record.lineno
        
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        
        # Add extra fields from record
        if hasattr(record, 'extra_data'):
            log_data["data"] = record.extra_data
        
        if hasattr(record, 'duration_ms'):
            log_data["duration_ms"] = record.duration_ms
        
        if hasattr(record, 'unit_id'):
            log_data["unit_id"] = record.unit_id
        if hasattr(record, 'platform'):
            log_data["platform"] = record.platform
        
        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds structured context to log messages.
    """
    
    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs
    
    def log_with_context(
        self,
        level: int,
        msg: str,
        unit_id: Optional[str] = None,
        platform: Optional[str] = None,
        duration_ms: Optional[float] = None,
        **extra_data
    ):
        """Log with additional structured context."""
        extra = {}
        if unit_id:
            extra['unit_id'] = unit_id
        if platform:
            extra['platform'] = platform
        if duration_ms is not None:
            extra['duration_ms'] = duration_ms
        if extra_data:
            extra['extra_data'] = extra_data
        
        self.log(level, msg, extra=extra)
    
    def sync_run_recorded(
        self,
        unit_id: str,
        platform: str,
        outcome: str,
        counts: Dict[str, int],
        duration_ms: Optional[float] = None
    ):
        """Log the outcome of one pair sync."""
        level = logging.WARNING if outcome == "failed" else logging.INFO
        self.log_with_context(
            level,
            f"Calendar sync {unit_id}/{platform}: {outcome}",
            unit_id=unit_id,
            platform=platform,
            duration_ms=duration_ms,
            outcome=outcome,
            **counts
        )
    
    def stage_status_changed(self, staged_id: str, old_status: str, new_status: str):
        """Log an operator review decision."""
        self.log_with_context(
            logging.INFO,
            f"Staged reservation {staged_id}: {old_status} -> {new_status}",
            staged_id=staged_id,
            old_status=old_status,
            new_status=new_status
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.
    
    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        include_uvicorn: Also configure uvicorn loggers
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]
    
    logging.getLogger("calsync").setLevel(log_level)
    
    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            logging.getLogger(logger_name).handlers = [handler]
    
    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    return StructuredLogger(logging.getLogger(name), {})


def set_sync_run_context(sync_run_id: str):
    """Tag log lines emitted by the current worker with a sync run id."""
    sync_run_id_var.set(sync_run_id)


def clear_sync_run_context():
    sync_run_id_var.set('')
