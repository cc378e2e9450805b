import contextvars
import datetime
import logging
import os
import re
from contextlib import contextmanager

_current_user = contextvars.ContextVar("report_user", default=None)


class ReportLogger:
    """
    Custom logger for the hospital report engine
    Logs format: datetime : user_name : error/warning/info : log details
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ReportLogger, cls).__new__(cls)
            cls._instance._setup_logger()
        return cls._instance

    def _setup_logger(self):
        """Set up the logger with the required format"""
        self.logger = logging.getLogger('hms_reports')

        # Read log level from environment variable, default to INFO
        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()

        log_level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL
        }
        log_level = log_level_map.get(log_level_str, logging.INFO)
        self.logger.setLevel(log_level)

        # Prevent duplicate log entries
        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        log_file = os.getenv('LOG_FILE') or os.path.join(
            os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'hms_reports.log'
        )
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)

        # The custom line format is built in _format_message
        formatter = logging.Formatter('%(message)s')
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

        self.filter_patterns = []

    def _should_log(self, message):
        """Check if the message should be logged based on filter patterns"""
        for pattern in self.filter_patterns:
            if re.search(pattern, message):
                return False
        return True

    def _get_username(self):
        """Get the identity bound by user_context, or 'system' outside of one"""
        return _current_user.get() or 'system'

    def _format_message(self, level, message):
        timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        username = self._get_username()
        return f"{timestamp} : {username} : {level} : {message}"

    def _render(self, message, args):
        if args:
            message = message % args if '%' in message else message.format(*args)
        return message

    def debug(self, message, *args):
        """Log a debug message. Supports format strings: debug("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.debug(self._format_message('debug', message))

    def info(self, message, *args):
        """Log an info message. Supports format strings: info("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.info(self._format_message('info', message))

    def warning(self, message, *args):
        """Log a warning message. Supports format strings: warning("format %s", arg)"""
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.warning(self._format_message('warning', message))

    def error(self, message, *args, exc_info=False):
        """
        Log an error message. Supports format strings: error("format %s", arg)
        Tracebacks are only attached when exc_info is set explicitly.
        """
        message = self._render(message, args)
        if self._should_log(message):
            self.logger.error(self._format_message('error', message), exc_info=exc_info)

    def add_filter_pattern(self, pattern):
        """Add a regex pattern to filter out log messages"""
        self.filter_patterns.append(pattern)

    def remove_filter_pattern(self, pattern):
        """Remove a regex pattern from the filter"""
        if pattern in self.filter_patterns:
            self.filter_patterns.remove(pattern)


# Create a singleton instance
logger = ReportLogger()


@contextmanager
def user_context(username):
    """Attribute every log line emitted inside the block to ``username``."""
    token = _current_user.set(username)
    try:
        yield
    finally:
        _current_user.reset(token)


def debug(message, *args):
    logger.debug(message, *args)


def info(message, *args):
    logger.info(message, *args)


def warning(message, *args):
    logger.warning(message, *args)


def error(message, *args, exc_info=False):
    logger.error(message, *args, exc_info=exc_info)


def exception(message):
    # Same as error, without traceback
    logger.error(message)


def add_filter_pattern(pattern):
    logger.add_filter_pattern(pattern)


def remove_filter_pattern(pattern):
    logger.remove_filter_pattern(pattern)
