"""
Logging utility for the ledger harness: named loggers, colored/JSON formatting
and rotating log files.
"""
import logging
import logging.handlers
import os
import sys
import json
import time
import configparser
import functools
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, Any
from contextlib import contextmanager
import threading
import traceback


PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        """Format log record with colors."""
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    _RESERVED = {
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
        'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
        'processName', 'process', 'message', 'taskName'
    }

    def format(self, record):
        """Format log record as JSON."""
        log_obj = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
            'thread_name': record.threadName,
        }

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__,  # type: ignore
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        # Extra fields passed via `extra=`
        for key, value in record.__dict__.items():
            if key not in self._RESERVED:
                log_obj[key] = value

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class EnhancedLogger:
    """Registry of configured loggers sharing one configuration."""

    def __init__(self):
        self._loggers: Dict[str, logging.Logger] = {}
        self._lock = threading.Lock()
        self._config = self._load_default_config()

    def _load_default_config(self) -> Dict[str, Any]:
        """Load logging configuration from config.ini, then environment variables."""
        config: Dict[str, Any] = {'log_level': 'INFO'}

        config_dir = Path(os.getenv('LEDGER_CONFIG_DIR', PROJECT_ROOT / 'config'))
        config_path = config_dir / 'config.ini'
        if config_path.exists():
            parser = configparser.ConfigParser(interpolation=None)
            try:
                parser.read(config_path, encoding='utf-8')
                config['log_level'] = parser['DEFAULT'].get('log_level', 'INFO')
            except configparser.Error as e:
                print(f"Warning: Could not load log_level from {config_path}: {e}")

        config['log_level'] = os.getenv('LOG_LEVEL', config['log_level'])
        config.update({
            'log_format': os.getenv('LOG_FORMAT', 'standard'),  # standard, json, colored
            'max_file_size': int(os.getenv('LOG_MAX_FILE_SIZE', '10485760')),  # 10MB
            'backup_count': int(os.getenv('LOG_BACKUP_COUNT', '5')),
            'log_to_console': os.getenv('LOG_TO_CONSOLE', 'true').lower() == 'true',
            'log_to_file': os.getenv('LOG_TO_FILE', 'true').lower() == 'true',
            'logs_base_dir': os.getenv('LOGS_BASE_DIR', str(PROJECT_ROOT / 'logs')),
        })
        return config

    def _build_formatter(self, custom_format: Optional[str] = None) -> logging.Formatter:
        format_type = self._config['log_format']
        if custom_format:
            return logging.Formatter(custom_format)
        if format_type == 'json':
            return JSONFormatter()
        if format_type == 'colored':
            return ColoredFormatter(DEFAULT_FORMAT)
        return logging.Formatter(DEFAULT_FORMAT)

    def setup_logger(
        self,
        name: str,
        log_level: Optional[str] = None,
        log_to_file: Optional[bool] = None,
        log_to_console: Optional[bool] = None,
        custom_format: Optional[str] = None,
    ) -> logging.Logger:
        """
        Set up a logger with configurable options.

        Args:
            name: Logger name
            log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_to_file: Whether to log to file
            log_to_console: Whether to log to console
            custom_format: Custom log format

        Returns:
            Configured logger instance
        """
        with self._lock:
            if name in self._loggers:
                return self._loggers[name]

            logger = logging.getLogger(name)
            logger.handlers.clear()

            level = log_level or self._config['log_level']
            logger.setLevel(getattr(logging, level.upper()))

            formatter = self._build_formatter(custom_format)

            if log_to_console if log_to_console is not None else self._config['log_to_console']:
                console_handler = logging.StreamHandler(sys.stdout)
                if isinstance(formatter, ColoredFormatter) and not sys.stdout.isatty():
                    console_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
                else:
                    console_handler.setFormatter(formatter)
                logger.addHandler(console_handler)

            if log_to_file if log_to_file is not None else self._config['log_to_file']:
                self._add_file_handler(logger, formatter)

            logger.propagate = False

            self._loggers[name] = logger
            return logger

    def _add_file_handler(self, logger: logging.Logger, formatter: logging.Formatter):
        """All loggers share a single rotating log file."""
        logs_dir = Path(self._config['logs_base_dir'])
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "ledger_harness.log",
            maxBytes=self._config['max_file_size'],
            backupCount=self._config['backup_count'],
            encoding='utf-8'
        )
        if isinstance(formatter, ColoredFormatter):
            formatter = logging.Formatter(DEFAULT_FORMAT)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get existing logger or create new one with default settings."""
        if name in self._loggers:
            return self._loggers[name]
        return self.setup_logger(name)

    def configure_from_dict(self, config: Dict[str, Any]):
        """Configure logging from dictionary."""
        self._config.update(config)
        self._update_existing_loggers()

    def _update_existing_loggers(self):
        level = getattr(logging, self._config.get('log_level', 'INFO').upper())
        for logger in self._loggers.values():
            logger.setLevel(level)

    @contextmanager
    def log_context(self, logger_name: str, **context):
        """Context manager yielding an adapter that prefixes messages with context."""
        logger = self.get_logger(logger_name)

        class ContextAdapter(logging.LoggerAdapter):
            def process(self, msg, kwargs):
                return f"[{', '.join(f'{k}={v}' for k, v in self.extra.items())}] {msg}", kwargs

        yield ContextAdapter(logger, context)

    def log_performance(self, logger_name: str, operation: str, duration: float, **extra):
        """Log performance metrics."""
        logger = self.get_logger(logger_name)
        logger.info(
            f"Performance: {operation} completed in {duration:.3f}s",
            extra={'operation': operation, 'duration': duration, **extra}
        )


# Global enhanced logger instance
_enhanced_logger = EnhancedLogger()


def setup_logger(name: str, log_level: Optional[str] = None,
                 log_to_file: Optional[bool] = None,
                 log_to_console: Optional[bool] = None,
                 custom_format: Optional[str] = None) -> logging.Logger:
    """Set up a logger through the shared registry."""
    return _enhanced_logger.setup_logger(
        name=name,
        log_level=log_level,
        log_to_file=log_to_file,
        log_to_console=log_to_console,
        custom_format=custom_format
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger by name."""
    return _enhanced_logger.get_logger(name)


def set_log_level(level: str):
    """Set log level for all loggers and update configuration."""
    level = level.upper()
    if level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        raise ValueError(f"Invalid log level: {level}")

    _enhanced_logger.configure_from_dict({'log_level': level})
    return level


def get_current_log_level() -> str:
    """Get current log level from configuration."""
    return _enhanced_logger._config.get('log_level', 'INFO')


def log_test_step(step_name: str, **context):
    """Log a test step with context information."""
    context_str = ', '.join(f'{k}={v}' for k, v in context.items()) if context else ''
    message = f"Test Step: {step_name}"
    if context_str:
        message += f" | Context: {context_str}"

    test_logger.info(message)


def log_test_result(test_name: str, status: str, **details):
    """Log test result with details."""
    details_str = ', '.join(f'{k}={v}' for k, v in details.items()) if details else ''
    message = f"Test Result: {test_name} - {status.upper()}"
    if details_str:
        message += f" | Details: {details_str}"

    if status.upper() in ['PASSED', 'SUCCESS']:
        test_logger.info(message)
    elif status.upper() in ['FAILED', 'ERROR']:
        test_logger.error(message)
    else:
        test_logger.warning(message)


@contextmanager
def log_context(logger_name: str, **context):
    """Context manager for adding context to logs."""
    with _enhanced_logger.log_context(logger_name, **context) as adapter:
        yield adapter


def log_performance(logger_name: str, operation: str, duration: float, **extra):
    """Log performance metrics."""
    _enhanced_logger.log_performance(logger_name, operation, duration, **extra)


def log_execution_time(logger_name: str, operation_name: Optional[str] = None):
    """Decorator to log function execution time."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            op_name = operation_name or f"{func.__module__}.{func.__name__}"
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                get_logger(logger_name).error(f"Operation {op_name} failed after {duration:.3f}s: {e}")
                raise
            log_performance(logger_name, op_name, time.time() - start_time)
            return result
        return wrapper
    return decorator


# Default loggers
logger = setup_logger("ledger_harness")
ledger_logger = setup_logger("ledger")
network_logger = setup_logger("ledger_network")
harness_logger = setup_logger("harness")
test_logger = setup_logger("test_execution")


__all__ = [
    'setup_logger', 'get_logger', 'set_log_level',
    'get_current_log_level', 'log_test_step', 'log_test_result',
    'log_context', 'log_performance', 'log_execution_time',
    'logger', 'ledger_logger', 'network_logger', 'harness_logger',
    'test_logger',
    'EnhancedLogger', 'ColoredFormatter', 'JSONFormatter'
]
