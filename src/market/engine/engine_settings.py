from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from constants import (
    CEO_THRESHOLD,
    DEFAULT_LOT_SIZE,
    DEFAULT_STARTING_CAPITAL,
    MAX_COMPANIES_PER_BOT,
    PRICE_TICK,
)


class EngineSettings(BaseModel):
    """Numeric knobs of one IPO engine instance.

    Fields:
        starting_capital: Capital each participant receives at session creation
        lot_size: Share increment for generated bot bids
        price_tick: Bot bid prices are rounded to this increment
        price_jitter: Half-width of the uniform jitter added to bot anchor prices
        max_companies_per_bot: Upper bound on companies one bot bids on per round
        processing_delay_sec: Pause before bot generation and clearing run
        clearing_timeout_sec: Force-advance if processing has not finished by then
        bidding_window_sec: Auto-close the IPO round after this long (None disables)
        ceo_threshold: Ownership fraction conferring CEO status
        ensure_scavengers: Top up scavenger bots to the liquidity minimum at session creation
        verify_ledger: Run the ledger verifier after every round
    """
    model_config = ConfigDict(frozen=True)

    starting_capital: float = Field(default=DEFAULT_STARTING_CAPITAL, ge=0)
    lot_size: int = Field(default=DEFAULT_LOT_SIZE, gt=0)
    price_tick: float = Field(default=PRICE_TICK, gt=0)
    price_jitter: float = Field(default=0.20, ge=0)
    max_companies_per_bot: int = Field(default=MAX_COMPANIES_PER_BOT, ge=1)
    processing_delay_sec: float = Field(default=3.0, ge=0)
    clearing_timeout_sec: float = Field(default=30.0, gt=0)
    bidding_window_sec: float | None = Field(default=120.0, gt=0)
    ceo_threshold: float = Field(default=CEO_THRESHOLD, gt=0, le=1)
    ensure_scavengers: bool = False
    verify_ledger: bool = True

    @model_validator(mode='after')
    def validate_timing(self):
        """Processing must be able to finish before the watchdog fires"""
        if self.processing_delay_sec >= self.clearing_timeout_sec:
            raise ValueError(
                f"processing_delay_sec ({self.processing_delay_sec}) must be shorter than "
                f"clearing_timeout_sec ({self.clearing_timeout_sec})"
            )
        return self

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'EngineSettings':
        """Build settings from scenario parameters (upper-case keys); missing keys keep defaults"""
        mapping = {
            'STARTING_CAPITAL': 'starting_capital',
            'LOT_SIZE': 'lot_size',
            'PRICE_TICK': 'price_tick',
            'PRICE_JITTER': 'price_jitter',
            'MAX_COMPANIES_PER_BOT': 'max_companies_per_bot',
            'PROCESSING_DELAY_SEC': 'processing_delay_sec',
            'CLEARING_TIMEOUT_SEC': 'clearing_timeout_sec',
            'BIDDING_WINDOW_SEC': 'bidding_window_sec',
            'CEO_THRESHOLD': 'ceo_threshold',
            'ENSURE_SCAVENGERS': 'ensure_scavengers',
            'VERIFY_LEDGER': 'verify_ledger',
        }
        return cls(**{field: params[key] for key, field in mapping.items() if key in params})
