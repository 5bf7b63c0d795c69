"""Logger with composable output sinks, backed by logfire.

Import ``logger`` from here everywhere. Until setup_logger() runs
(normally from Config validation) every call on it is a no-op, so
library code can log unconditionally.
"""

from __future__ import annotations

import contextlib
import os
from abc import abstractmethod
from pathlib import Path
from typing import Any

from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from pydantic import Field, PrivateAttr, model_validator

from mergeloom.core.base import BaseConfig

_current_logger: Logger | None = None

# Level names mapped to OpenTelemetry severity numbers, most verbose
# first. Everything that filters or renders levels reads this table.
LEVELS = {
    'spew': logs_pb2.SEVERITY_NUMBER_TRACE,
    'trace': logs_pb2.SEVERITY_NUMBER_TRACE3,
    'debug': logs_pb2.SEVERITY_NUMBER_DEBUG,
    'info': logs_pb2.SEVERITY_NUMBER_INFO,
    'warn': logs_pb2.SEVERITY_NUMBER_WARN,
    'error': logs_pb2.SEVERITY_NUMBER_ERROR,
    'fatal': logs_pb2.SEVERITY_NUMBER_FATAL,
}

# RFC 5424 severities for the {priority} template field
_SYSLOG_SEVERITY = {
    'spew': 7,
    'trace': 7,
    'debug': 7,
    'info': 6,
    'warn': 4,
    'error': 3,
    'fatal': 3,
}

# Span attributes that are instrumentation internals, not user kwargs
_SKIP_KEYS = frozenset({
    'code.filepath', 'code.lineno', 'code.function',
    'logfire.msg', 'logfire.level_num', 'logfire.span_type',
    'logfire.msg_template', 'logfire.json_schema',
})
_SKIP_PREFIXES = ('otel.', 'telemetry.', 'service.', 'process.')


def level_name(level_num: int) -> str:
    """Name of the highest level whose threshold level_num reaches."""
    for name in reversed(LEVELS):
        if level_num >= LEVELS[name]:
            return name
    return "unknown"


class _LoggerProxy:
    """Forwards attribute access to the current Logger, or no-ops."""

    def __getattr__(self, name):
        if _current_logger is None:
            if name == "span":
                return lambda *args, **kwargs: contextlib.nullcontext()
            def _noop(*args, **kwargs):  # noqa: ARG001
                pass
            return _noop
        return getattr(_current_logger, name)

    def __enter__(self):
        if _current_logger is None:
            return self
        return _current_logger.__enter__()

    def __exit__(self, *args):
        if _current_logger is None:
            return False
        return _current_logger.__exit__(*args)


logger = _LoggerProxy()


class LevelFilteringExporter(SpanExporter):
    """Drops spans below a minimum level before forwarding them."""

    def __init__(self, exporter: SpanExporter, min_level: str | None):
        self._exporter = exporter
        self._min_severity = LEVELS.get(
            (min_level or "info").lower(), logs_pb2.SEVERITY_NUMBER_INFO
        )

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        kept = [
            span for span in spans
            if (span.attributes or {}).get(
                'logfire.level_num', logs_pb2.SEVERITY_NUMBER_INFO
            ) >= self._min_severity
        ]
        if kept:
            return self._exporter.export(kept)
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class Sink(BaseConfig):
    """One independent log destination."""

    enabled: bool = Field(default=True, description="Enable this sink")
    level: str | None = Field(
        default=None,
        description=(
            "Minimum level for this sink; inherits Logger.level when "
            "unset. Valid: spew, trace, debug, info, warn, error, fatal"
        )
    )
    escape_special_characters: bool = Field(
        default=False,
        description="Escape newlines/tabs so each record is one line"
    )
    format_template: str | None = Field(
        default=None,
        description=(
            "str.format template over timestamp, level, message, "
            "location, function, priority. None writes span JSON"
        )
    )

    _processor: Any = PrivateAttr(default=None)

    @staticmethod
    def _escape_special_chars(text: str) -> str:
        return (text
            .replace('\\', '\\\\')
            .replace('\n', '\\n')
            .replace('\r', '\\r')
            .replace('\t', '\\t')
        )

    @staticmethod
    def _extract_span_data(span) -> dict:
        from datetime import UTC, datetime

        attrs = span.attributes or {}
        filepath = attrs.get("code.filepath", "")
        lineno = attrs.get("code.lineno", "")
        name = level_name(
            attrs.get("logfire.level_num", logs_pb2.SEVERITY_NUMBER_INFO)
        )
        return {
            'timestamp': datetime.fromtimestamp(
                span.start_time / 1e9, tz=UTC
            ),
            'level': name,
            'message': attrs.get("logfire.msg", span.name),
            'filepath': filepath,
            'lineno': lineno,
            'location': f"{filepath}:{lineno}" if filepath else "",
            'function': attrs.get("code.function", ""),
            # facility=user(1)
            'priority': 8 * 1 + _SYSLOG_SEVERITY.get(name, 6),
        }

    def _format_span(self, span) -> str:
        if not self.format_template:
            return span.to_json() + os.linesep

        data = self._extract_span_data(span)
        if self.escape_special_characters:
            data['message'] = self._escape_special_chars(data['message'])

        try:
            formatted = self.format_template.format(**data)
        except KeyError as e:
            return f"ERROR: Invalid template field {e}\n"

        extras = {
            key: value
            for key, value in (span.attributes or {}).items()
            if key not in _SKIP_KEYS
            and not key.startswith(_SKIP_PREFIXES)
        }
        if extras:
            attrs_str = ' '.join(
                f"{k}={v!r}" for k, v in sorted(extras.items())
            )
            formatted = f"{formatted} │ {attrs_str}"

        return formatted + '\n'

    @abstractmethod
    def create_processor(self, log_root: Path, session_name: str):
        """Return a span processor for this sink, or None."""

    def close(self):
        if self._processor:
            with contextlib.suppress(Exception):
                self._processor.shutdown()


class ConsoleSink(Sink):
    """Console output, rendered by logfire itself."""

    verbose: bool = Field(default=True, description="Show span details")
    colors: str = Field(
        default="auto",
        description="Color mode: auto, always, never"
    )

    def create_processor(self, log_root: Path, session_name: str):
        return None


class OTLPSink(Sink):
    """OTLP export (SigNoz, Jaeger, ...)."""

    enabled: bool = Field(default=False, description="Enable OTLP export")
    endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP gRPC endpoint"
    )
    insecure: bool = Field(default=True, description="Skip TLS")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers, e.g. for authentication"
    )

    def create_processor(self, log_root: Path, session_name: str):
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        exporter = OTLPSpanExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            headers=self.headers or None,
        )
        if self.level:
            exporter = LevelFilteringExporter(exporter, self.level)
        return BatchSpanProcessor(exporter)


class FileSink(Sink):
    """Append records to a per-session log file."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(
        default="{log_root}/{session_name}/mergeloom.log",
        description="Log file path; {log_root} and {session_name} expand"
    )

    _file: Any = PrivateAttr(default=None)

    def create_processor(self, log_root: Path, session_name: str):
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
        )

        log_path = Path(
            self.path.format(log_root=log_root, session_name=session_name)
        )
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Line buffered; stays open for the lifetime of the sink
        self._file = open(log_path, "a", buffering=1, encoding="utf-8")  # noqa: SIM115

        exporter = ConsoleSpanExporter(
            out=self._file,
            formatter=self._format_span,
        )
        return BatchSpanProcessor(LevelFilteringExporter(exporter, self.level))

    def close(self):
        # Processor flushes into the file, so it goes first
        super().close()
        if self._file and not self._file.closed:
            with contextlib.suppress(Exception):
                self._file.flush()
                self._file.close()


class LogfireSink(Sink):
    """logfire.dev cloud."""

    enabled: bool = Field(
        default=False,
        description="Send telemetry to logfire.dev"
    )
    token: str | None = Field(
        default=None,
        description="API token (or LOGFIRE_TOKEN)"
    )

    def create_processor(self, log_root: Path, session_name: str):
        return None


class Logger(BaseConfig):
    """Logger with console, file, OTLP and logfire.dev sinks.

    close() (or leaving a ``with logger:`` block) closes every sink.
    """

    level: str = Field(
        default="info",
        description=(
            "Default level for sinks without their own. "
            "Valid: spew, trace, debug, info, warn, error, fatal"
        )
    )
    console: ConsoleSink = Field(default_factory=ConsoleSink)
    otlp: OTLPSink = Field(default_factory=OTLPSink)
    file: FileSink = Field(default_factory=FileSink)
    logfire: LogfireSink = Field(default_factory=LogfireSink)

    @model_validator(mode='after')
    def _cascade_level_to_sinks(self) -> 'Logger':
        for sink in (self.console, self.file):
            if sink.level is None:
                sink.level = self.level
        return self

    def _sinks(self) -> tuple[Sink, ...]:
        return (self.console, self.otlp, self.file, self.logfire)

    def setup(self, log_root: Path, session_name: str):
        """Create processors for enabled sinks and configure logfire."""
        for sink in self._sinks():
            if sink.enabled:
                sink._processor = sink.create_processor(
                    log_root, session_name
                )

        processors = [
            sink._processor
            for sink in (self.otlp, self.file)
            if sink.enabled and sink._processor
        ]

        import logfire
        from logfire import ConsoleOptions

        console_config = (
            ConsoleOptions(
                min_log_level=(
                    "trace" if self.console.level == "spew"
                    else self.console.level
                ),
                verbose=self.console.verbose,
                colors=self.console.colors,
                include_timestamps=True,
            )
            if self.console.enabled
            else False
        )

        logfire.configure(
            service_name=f"mergeloom-{session_name}",
            send_to_logfire=self.logfire.enabled,
            token=self.logfire.token if self.logfire.enabled else None,
            console=console_config,
            additional_span_processors=processors or None,
        )

    # Logging methods delegate to logfire

    def info(self, msg: str, **kwargs):
        import logfire
        logfire.info(msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        import logfire
        logfire.debug(msg, **kwargs)

    def trace(self, msg: str, **kwargs):
        import logfire
        logfire.log(
            level=LEVELS['trace'],
            msg_template=msg,
            attributes=kwargs or None,
        )

    def spew(self, msg: str, **kwargs):
        """Below trace: per-object store traffic and similar noise."""
        import logfire
        logfire.log(
            level=LEVELS['spew'],
            msg_template=msg,
            attributes=kwargs or None,
        )

    def warn(self, msg: str, **kwargs):
        import logfire
        logfire.warn(msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self.warn(msg, **kwargs)

    def error(self, msg: str, **kwargs):
        import logfire
        logfire.error(msg, **kwargs)

    def span(self, msg: str, **kwargs):
        """Span context manager: ``with logger.span("commit"): ...``"""
        import logfire
        return logfire.span(msg, **kwargs)

    def log(self, level: str, msg: str, **kwargs):
        import logfire
        logfire.log(
            level=LEVELS.get(level.lower(), level),
            msg_template=msg,
            attributes=kwargs or None,
        )

    def __getattr__(self, name):
        import logfire
        return getattr(logfire, name)


def setup_logger(
    log_root: Path,
    session_name: str,
    console: ConsoleSink | None = None,
    otlp: OTLPSink | None = None,
    file: FileSink | None = None,
    logfire: LogfireSink | None = None,
) -> Logger:
    """Install the global logger used by ``logger``.

    Called by Config after loading; tests call it directly.
    """
    global _current_logger

    _current_logger = Logger(
        console=console or ConsoleSink(),
        otlp=otlp or OTLPSink(),
        file=file or FileSink(),
        logfire=logfire or LogfireSink(),
    )
    _current_logger.setup(log_root, session_name)

    return _current_logger
