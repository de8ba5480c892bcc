"""
ENCODING FIX - IMPORT FIRST FROM ENTRY POINTS

Supplier documents are full of accents, non-breaking spaces and euro signs.
In containers where stdout/stderr default to ASCII, printing a French
designation or logging a raw text excerpt raises UnicodeEncodeError. This
module makes both streams UTF-8 and installs a logging handler that never
raises on encoding problems.
"""
import io
import logging
import os
import sys

# Force UTF-8 mode for child processes too
os.environ['PYTHONUTF8'] = '1'
os.environ['PYTHONIOENCODING'] = 'utf-8:surrogateescape'

NOISY_LOGGERS = (
    "pdfminer",
    "pdfplumber",
    "httpx",
    "httpcore",
    "anthropic",
    "anthropic._base_client",
)


def _reconfigure_stream(name):
    stream = getattr(sys, name)
    try:
        if hasattr(stream, 'reconfigure'):
            stream.reconfigure(encoding='utf-8', errors='surrogateescape')
        elif hasattr(stream, 'buffer'):
            setattr(sys, name, io.TextIOWrapper(
                stream.buffer,
                encoding='utf-8',
                errors='surrogateescape',
                line_buffering=True
            ))
    except (AttributeError, ValueError, OSError):
        # Streams replaced by test runners or closed pipes cannot be reconfigured
        pass


def _safe_reconfigure():
    _reconfigure_stream('stdout')
    _reconfigure_stream('stderr')


# Apply fix immediately when module is imported
_safe_reconfigure()


class SafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that degrades unencodable characters instead of raising."""

    def emit(self, record):
        try:
            msg = self.format(record)
            encoding = getattr(self.stream, 'encoding', None) or 'utf-8'
            safe_msg = msg.encode(encoding, errors='replace').decode(encoding)
            self.stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def silence_noisy_loggers():
    """pdfminer logs every font warning; HTTP clients log response bodies."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_safe_logging(level="INFO", stream=None):
    """Replace root stream handlers with a single SafeStreamHandler (stderr by default, stdout carries JSON)."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if isinstance(handler, logging.StreamHandler):
            root.removeHandler(handler)

    safe_handler = SafeStreamHandler(stream or sys.stderr)
    safe_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    root.addHandler(safe_handler)
    root.setLevel(level)
    return safe_handler
