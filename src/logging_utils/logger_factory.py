"""Factory for creating and configuring loggers with consistent patterns."""
import logging
from pathlib import Path
from typing import Optional


class LoggerFactory:
    """Factory for creating loggers with standardized configurations."""

    NAMESPACE = 'ipo'

    @staticmethod
    def qualified_name(name: str) -> str:
        """Engine loggers live under a common namespace so callers can tune them together."""
        return f"{LoggerFactory.NAMESPACE}.{name}"

    @staticmethod
    def create_engine_logger(name: str) -> logging.Logger:
        """
        Create an in-process logger with no file output.

        The engine never writes files on its own; records propagate to
        whatever handlers the host application configured on the root logger.

        Args:
            name: Short logger name (e.g. 'clearing')

        Returns:
            Configured logger
        """
        logger = logging.getLogger(LoggerFactory.qualified_name(name))
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        return logger

    @staticmethod
    def attach_file_handler(
        logger: logging.Logger,
        run_dir: Path,
        filename: str,
        formatter: Optional[logging.Formatter] = None,
        mode: str = 'a'
    ) -> logging.Handler:
        """
        Add a file handler to an existing logger.

        Args:
            logger: Logger to extend
            run_dir: Run-specific directory for logs
            filename: Log filename
            formatter: Custom formatter (default: timestamped)
            mode: File mode passed to FileHandler

        Returns:
            The handler that was attached
        """
        if formatter is None:
            formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

        handler = logging.FileHandler(run_dir / filename, mode=mode)
        handler.setLevel(logging.INFO)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        return handler

    @staticmethod
    def attach_csv_handler(logger: logging.Logger, run_dir: Path, filename: str) -> logging.Handler:
        """CSV files use a plain formatter (no timestamp prefix)."""
        return LoggerFactory.attach_file_handler(
            logger, run_dir, filename, formatter=logging.Formatter('%(message)s')
        )

    @staticmethod
    def create_console_handler(level: int = logging.WARNING) -> logging.Handler:
        """Console handler for warnings and errors."""
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
        return console_handler
