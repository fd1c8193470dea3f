"""Centralized logging configuration for QJournal."""

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Literal

import structlog
from pydantic import BaseModel, Field

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_METADATA_KEYS = ("log_timestamp", "level", "event", "filename", "lineno", "logger")


class LoggingConfig(BaseModel):
    """Configuration for logging system.

    Logging Levels Guide:

    INFO (Default):
    - Pipeline run started/completed
    - Analytics report built
    - Cache cleared on data reload

    DEBUG (Developer Mode):
    - Per-stage transitions and durations
    - Solver iterations and fallbacks
    - Executor dispatch decisions

    WARNING:
    - Recoverable issues (unparseable dates, undetermined XIRR, skipped lots)
    - Aggregator fell back to its zero-valued result

    ERROR:
    - Stage failures that abort a pipeline run

    Timestamp Format Options:
    - "iso": 2025-10-22T20:50:07.288824Z (full ISO format)
    - "compact": 251022-205007.28 (YYMMDD-HHMMSS.ms) - recommended
    - "time": 20:50:07.28 (time only)
    - "short": 1022T205007 (MMDDTHHMMSS, very compact)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Minimum log level (INFO=user-friendly, DEBUG=verbose, WARNING=issues only)",
    )
    format: Literal["console", "json"] = Field(
        default="console",
        description="Output format: console, or json",
    )
    timestamp_format: Literal["iso", "compact", "time", "short"] = Field(
        default="compact",
        description="Timestamp format for console output",
    )
    enable_file: bool = Field(
        default=False,
        description="Enable logging to file (WARNING and above by default)",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path to log file (uses logs/qjournal.log if None)",
    )
    file_level: LogLevel = Field(
        default="WARNING",
        description="Minimum log level for file output",
    )
    file_rotation: bool = Field(
        default=True,
        description="Enable log file rotation (when file gets too large)",
    )
    max_file_size_mb: int = Field(
        default=10,
        description="Maximum log file size in MB before rotation",
    )
    backup_count: int = Field(
        default=3,
        description="Number of rotated log files to keep",
    )


class LoggerFactory:
    """
    Factory for creating and configuring structured loggers.

    Call configure() once at application startup, then use get_logger()
    to get configured logger instances throughout the codebase.

    Example:
        # At startup
        config = LoggingConfig(level="DEBUG", enable_file=True, file_path=Path("qjournal.log"))
        LoggerFactory.configure(config)

        # In modules
        logger = LoggerFactory.get_logger()
        logger.info("pipeline.run.completed", trades=120, duration_ms=41.2)
    """

    _config: LoggingConfig | None = None
    _configured: bool = False

    @classmethod
    def configure(cls, config: LoggingConfig | None = None) -> None:
        """
        Configure the logging system.

        Args:
            config: LoggingConfig instance. If None, uses default configuration.
        """
        if config is None:
            config = LoggingConfig()

        cls._config = config

        processors = cls._build_common_processors(config.timestamp_format)

        console_handler = logging.StreamHandler(stream=sys.stdout)
        console_handler.setLevel(getattr(logging, config.level))
        console_processor: Any
        if config.format == "console":
            console_processor = cls._console_renderer()
        else:
            console_processor = structlog.processors.JSONRenderer()
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=console_processor,
                foreign_pre_chain=processors,
            )
        )

        handlers: list[logging.Handler] = [console_handler]
        root_level = getattr(logging, config.level)

        if config.enable_file:
            if config.file_path is None:
                config.file_path = Path("logs/qjournal.log")

            file_handler = cls._configure_file_logging(config, processors)
            handlers.append(file_handler)
            root_level = min(root_level, getattr(logging, config.file_level))

        logging.basicConfig(level=root_level, handlers=handlers, force=True)

        configured_processors = list(processors)
        if config.format == "console":
            configured_processors.extend(
                [
                    structlog.dev.set_exc_info,
                    structlog.processors.ExceptionRenderer(
                        structlog.dev.plain_traceback,  # type: ignore[arg-type]
                    ),
                ]
            )
        else:
            configured_processors.append(structlog.processors.format_exc_info)
        configured_processors.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)

        structlog.configure(
            processors=configured_processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        cls._configured = True

    @classmethod
    def _build_common_processors(cls, timestamp_format: str) -> list[Any]:
        """Processors shared by both structlog and stdlib handlers before rendering."""
        return [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            cls._get_timestamper(timestamp_format),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
        ]

    @staticmethod
    def _get_timestamper(fmt: str) -> Any:
        """Get timestamper for the configured format.

        Uses 'log_timestamp' key so trade fields named 'date' or 'timestamp'
        are never overwritten.
        """

        def add_timestamp_processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
            now = datetime.now(timezone.utc)
            ms = now.microsecond // 10000

            if fmt == "compact":
                event_dict["log_timestamp"] = now.strftime(f"%y%m%d-%H%M%S.{ms:02d}")
            elif fmt == "time":
                event_dict["log_timestamp"] = now.strftime(f"%H:%M:%S.{ms:02d}")
            elif fmt == "short":
                event_dict["log_timestamp"] = now.strftime("%m%dT%H%M%S")
            else:
                event_dict["log_timestamp"] = now.isoformat()

            return event_dict

        return add_timestamp_processor

    @staticmethod
    def _console_renderer() -> Callable[[Any, str, dict[str, Any]], str]:
        """Console renderer: timestamp, level, event, context and file:line."""

        def renderer(logger: Any, name: str, event_dict: dict[str, Any]) -> str:
            timestamp = event_dict.pop("log_timestamp", "")
            level = event_dict.pop("level", "info").upper()
            event = event_dict.pop("event", "")
            filename = event_dict.pop("filename", "")
            lineno = event_dict.pop("lineno", "")
            logger_name = event_dict.pop("logger", "")

            formatted = _SystemLogFormatters.format_system_log(event, event_dict, level, timestamp)

            if filename and lineno:
                module_file = Path(filename).stem
                if logger_name and logger_name != "qjournal":
                    location = f"({logger_name}.{module_file}:{lineno})"
                else:
                    location = f"({module_file}:{lineno})"
                return f"{formatted} {_SystemLogFormatters.DIM}{location}{_SystemLogFormatters.RESET}"

            return formatted

        return renderer

    @classmethod
    def _configure_file_logging(cls, config: LoggingConfig, pre_chain: list[Any]) -> logging.Handler:
        """Configure file output for logging."""
        file_path = config.file_path
        assert file_path is not None  # Already validated in configure()

        file_path.parent.mkdir(parents=True, exist_ok=True)

        handler: logging.Handler
        if config.file_rotation:
            handler = RotatingFileHandler(
                filename=str(file_path),
                maxBytes=config.max_file_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(
                filename=str(file_path),
                encoding="utf-8",
            )

        handler.setLevel(getattr(logging, config.file_level))

        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=pre_chain,
            )
        )

        return handler

    @classmethod
    def get_logger(cls, name: str | None = None):
        """
        Get a configured logger instance.

        Args:
            name: Optional logger name. If None, uses the calling module's __name__.

        Returns:
            Configured structlog BoundLogger instance.
        """
        if not cls._configured:
            cls.configure()

        if name is None:
            import inspect

            frame = inspect.currentframe()
            if frame and frame.f_back:
                name = frame.f_back.f_globals.get("__name__", "qjournal")
            else:
                name = "qjournal"

        return structlog.get_logger(name)

    @classmethod
    def get_config(cls) -> LoggingConfig:
        """Get current logging configuration."""
        if cls._config is None:
            return LoggingConfig()
        return cls._config

    @classmethod
    def is_configured(cls) -> bool:
        """Check if logging has been configured."""
        return cls._configured

    @classmethod
    def reset(cls) -> None:
        """Reset logging configuration (mainly for testing)."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.handlers.clear()
        root_logger.setLevel(logging.NOTSET)
        cls._config = None
        cls._configured = False
        structlog.reset_defaults()


class _SystemLogFormatters:
    """ANSI formatters for console logs, keyed on the event name prefix."""

    CYAN = "\033[36m"
    MAGENTA = "\033[35m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    LEVEL_COLORS = {
        "DEBUG": CYAN,
        "INFO": GREEN,
        "WARNING": YELLOW,
        "ERROR": RED,
        "CRITICAL": MAGENTA,
    }

    @classmethod
    def format_system_log(cls, event: str, event_dict: dict[str, Any], level: str, timestamp: str) -> str:
        """Format a log line based on the event prefix."""
        level_color = cls.LEVEL_COLORS.get(level, cls.RESET)

        if event.startswith("pipeline."):
            return cls._format_pipeline_log(event, event_dict, level_color, timestamp)
        if event.startswith("xirr.") or event.startswith("cache."):
            return cls._format_component_log("Solver", event, event_dict, level_color, timestamp)
        if event.startswith("aggregator."):
            return cls._format_component_log("Analytics", event, event_dict, level_color, timestamp)
        return cls._format_generic_log(event, event_dict, level_color, timestamp)

    @classmethod
    def _format_pipeline_log(cls, event: str, event_dict: dict[str, Any], color: str, timestamp: str) -> str:
        """Format pipeline stage and run logs."""
        msg = event.replace("pipeline.", "").replace("_", " ").replace(".", " ").title()

        parts = [
            f"{cls.DIM}{timestamp}{cls.RESET}",
            f"{color}Pipeline{cls.RESET}",
            f"{cls.BOLD}{msg}{cls.RESET}",
        ]

        if "stage" in event_dict:
            parts.append(f"{cls.MAGENTA}{event_dict['stage']}{cls.RESET}")
        if "trade_count" in event_dict:
            parts.append(f"Trades: {cls.YELLOW}{event_dict['trade_count']}{cls.RESET}")
        if "progress" in event_dict:
            parts.append(f"Progress: {cls.GREEN}{float(event_dict['progress']):.0f}%{cls.RESET}")
        if "duration_ms" in event_dict:
            parts.append(f"{cls.DIM}{float(event_dict['duration_ms']):.1f}ms{cls.RESET}")
        if "error" in event_dict:
            parts.append(f"{cls.RED}{event_dict['error']}{cls.RESET}")

        return " | ".join(parts)

    @classmethod
    def _format_component_log(
        cls, component: str, event: str, event_dict: dict[str, Any], color: str, timestamp: str
    ) -> str:
        """Format solver, cache and aggregator logs."""
        msg = event.split(".", 1)[-1].replace("_", " ").replace(".", " ").title()

        parts = [
            f"{cls.DIM}{timestamp}{cls.RESET}",
            f"{color}{component}{cls.RESET}",
            f"{cls.BOLD}{msg}{cls.RESET}",
        ]

        for key, value in sorted(event_dict.items()):
            if key.startswith("_") or key in _METADATA_KEYS:
                continue
            parts.append(f"{key}={cls.CYAN}{value}{cls.RESET}")

        return " | ".join(parts)

    @classmethod
    def _format_generic_log(cls, event: str, event_dict: dict[str, Any], color: str, timestamp: str) -> str:
        """Generic format for any other log."""
        msg = event.replace("_", " ").title()

        parts = [
            f"{cls.DIM}{timestamp}{cls.RESET}",
            f"{color}{msg}{cls.RESET}",
        ]

        context_parts = []
        for key, value in sorted(event_dict.items()):
            if key.startswith("_") or key in _METADATA_KEYS:
                continue
            context_parts.append(f"{key}={cls.CYAN}{value}{cls.RESET}")

        if context_parts:
            parts.append(" ".join(context_parts))

        return " | ".join(parts)
