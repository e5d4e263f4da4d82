"""CSV-shaped log lines for structured engine events."""
import csv
import io
import logging
from datetime import datetime


def _csv_row(fields) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="").writerow(fields)
    return buffer.getvalue()


class CSVLogger:
    """Formats structured events as CSV rows and hands them to a logger."""

    @staticmethod
    def log_validation_error(
        logger: logging.Logger,
        session_id: str,
        round_number: int,
        participant_id: str,
        participant_type: str,
        error_type: str,
        details: str,
        attempted_action: str,
        debug: bool = False
    ) -> str:
        """
        Log a rejected bid as a CSV row.

        Args:
            logger: Logger instance to use
            session_id: Session the bid was submitted to
            round_number: Round number
            participant_id: Participant ID
            participant_type: 'human' or the bot archetype
            error_type: Rejection reason code
            details: Human readable explanation
            attempted_action: The bid that was attempted
            debug: If True, also log human-readable format at WARNING

        Returns:
            The CSV row that was logged
        """
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')
        fields = [timestamp, session_id, round_number, participant_id, participant_type,
                  error_type, details, attempted_action]
        csv_message = _csv_row(fields)

        logger.info(csv_message)

        if debug:
            logger.warning(
                f"Validation Error - Participant {participant_id} ({participant_type}) - "
                f"{error_type}: {details} [Attempted: {attempted_action}]"
            )
        return csv_message

    @staticmethod
    def log_allocation(
        logger: logging.Logger,
        session_id: str,
        round_number: int,
        company_id: str,
        participant_id: str,
        shares_allocated: int,
        clearing_price: float,
        cost: float
    ) -> str:
        """Log a single settled IPO allocation as a CSV row."""
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')
        fields = [timestamp, session_id, round_number, company_id, participant_id,
                  shares_allocated, f"{clearing_price:.2f}", f"{cost:.2f}"]
        csv_message = _csv_row(fields)
        logger.info(csv_message)
        return csv_message
