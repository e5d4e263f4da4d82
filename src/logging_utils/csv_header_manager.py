"""Manager for CSV file headers and initialization."""
from pathlib import Path


class CSVHeaders:
    """Constants for CSV file headers."""

    VALIDATION_ERRORS = (
        "timestamp,session_id,round_number,participant_id,participant_type,"
        "error_type,details,attempted_action"
    )

    IPO_ALLOCATIONS = (
        "timestamp,session_id,round_number,company_id,participant_id,"
        "shares_allocated,clearing_price,cost"
    )


class CSVHeaderManager:
    """Manages initialization of CSV files with headers."""

    @staticmethod
    def initialize_csv_file(file_path: Path, header: str) -> None:
        """
        Initialize a CSV file with a header if it doesn't exist or is empty.

        Args:
            file_path: Path to the CSV file
            header: Header string to write
        """
        if not file_path.exists() or file_path.stat().st_size == 0:
            with open(file_path, 'w') as f:
                f.write(f"{header}\n")

