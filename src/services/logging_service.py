"""LoggingService: named engine loggers plus structured event helpers."""
import logging
from pathlib import Path
from typing import Dict, List, Optional

from logging_utils.logger_factory import LoggerFactory
from logging_utils.csv_header_manager import CSVHeaders, CSVHeaderManager
from logging_utils.csv_logger import CSVLogger


class LoggingService:
    """Centralized logging service shared by every session.

    Loggers are created lazily as in-process loggers; nothing touches the
    filesystem unless ``initialize`` is called with a run directory.
    """

    LOGGER_NAMES = (
        'bids', 'bots', 'clearing', 'ledger', 'phase', 'sessions',
        'verification', 'validation_errors', 'allocations',
    )

    _loggers: Dict[str, logging.Logger] = {}
    _run_dir: Optional[Path] = None
    _file_handlers: List[logging.Handler] = []

    @classmethod
    def _ensure_loggers(cls):
        if not cls._loggers:
            for name in cls.LOGGER_NAMES:
                cls._loggers[name] = LoggerFactory.create_engine_logger(name)

    @classmethod
    def initialize(cls, run_id: str, base_dir: Path = Path('logs'), console: bool = True) -> Path:
        """Attach file output for a run. Used by the CLI runners only."""
        cls._ensure_loggers()
        cls.shutdown()

        cls._run_dir = Path(base_dir) / run_id
        cls._run_dir.mkdir(parents=True, exist_ok=True)

        CSVHeaderManager.initialize_csv_file(
            cls._run_dir / 'validation_errors.csv', CSVHeaders.VALIDATION_ERRORS
        )
        CSVHeaderManager.initialize_csv_file(
            cls._run_dir / 'ipo_allocations.csv', CSVHeaders.IPO_ALLOCATIONS
        )

        console_handler = LoggerFactory.create_console_handler() if console else None
        for name, logger in cls._loggers.items():
            if name == 'validation_errors':
                handler = LoggerFactory.attach_csv_handler(logger, cls._run_dir, 'validation_errors.csv')
            elif name == 'allocations':
                handler = LoggerFactory.attach_csv_handler(logger, cls._run_dir, 'ipo_allocations.csv')
            else:
                handler = LoggerFactory.attach_file_handler(logger, cls._run_dir, f"{name}.log")
            cls._file_handlers.append(handler)
            if console_handler is not None:
                logger.addHandler(console_handler)
            # Prevent duplicate messages
            logger.propagate = False
        if console_handler is not None:
            cls._file_handlers.append(console_handler)

        return cls._run_dir

    @classmethod
    def shutdown(cls):
        """Detach and close any file handlers added by ``initialize``."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                if handler in cls._file_handlers:
                    logger.removeHandler(handler)
            logger.propagate = True
        for handler in cls._file_handlers:
            handler.close()
        cls._file_handlers = []
        cls._run_dir = None

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get logger by name."""
        cls._ensure_loggers()
        if name not in cls._loggers:
            raise KeyError(f"Unknown logger: {name}")
        return cls._loggers[name]

    @classmethod
    def log_validation_error(
        cls,
        session_id: str,
        round_number: int,
        participant_id: str,
        participant_type: str,
        error_type: str,
        details: str,
        attempted_action: str,
        debug: bool = False
    ):
        """Log a rejected bid."""
        CSVLogger.log_validation_error(
            logger=cls.get_logger('validation_errors'),
            session_id=session_id,
            round_number=round_number,
            participant_id=participant_id,
            participant_type=participant_type,
            error_type=error_type,
            details=details,
            attempted_action=attempted_action,
            debug=debug
        )

    @classmethod
    def log_allocations(cls, session_id: str, round_number: int, clearing_result):
        """Log every allocation of a company's clearing result."""
        logger = cls.get_logger('allocations')
        for allocation in clearing_result.allocations:
            CSVLogger.log_allocation(
                logger=logger,
                session_id=session_id,
                round_number=round_number,
                company_id=clearing_result.company_id,
                participant_id=allocation.participant_id,
                shares_allocated=allocation.shares_allocated,
                clearing_price=clearing_result.clearing_price,
                cost=allocation.cost
            )

    @classmethod
    def log_phase(cls, message: str):
        """Log phase controller message."""
        cls.get_logger('phase').info(message)
