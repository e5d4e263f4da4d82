from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BotArchetype(str, Enum):
    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"
    CEO = "ceo"
    SCAVENGER = "scavenger"
    BALANCED = "balanced"
    MOMENTUM = "momentum"


class BotProfile(BaseModel):
    """Immutable numeric parameters for one bot archetype.

    Fields:
        archetype: Which personality these parameters belong to
        aggressiveness: Where in ipo_price_range the bot anchors its price (0 = low end)
        concentration: How strongly the bot concentrates on few companies (1 = one company)
        min_price / max_price: Hard bounds on any price the bot will bid
        min_qty / max_qty: Quantity bounds used by the trading market
        ownership_cap_pct: Largest fraction of one company the bot will target
        ipo_bid_count: Upper bound on price tiers per company in one IPO round
        ipo_price_range: (low, high) anchor range for IPO prices
        deployment: Fraction of remaining capital the bot aims to commit in an IPO round

    The trading-only fields (trading_frequency, trend_sensitivity,
    rumor_sensitivity, liquidity_maintenance) are carried for the trading
    market and are not read by the IPO engine.
    """
    model_config = ConfigDict(frozen=True)

    archetype: BotArchetype
    aggressiveness: float = Field(default=0.5, ge=0.0, le=1.0)
    concentration: float = Field(default=0.5, ge=0.0, le=1.0)
    min_price: float = Field(default=0.50, gt=0)
    max_price: float = Field(default=5.00, gt=0)
    min_qty: int = Field(default=10, ge=1)
    max_qty: int = Field(default=500, ge=1)
    ownership_cap_pct: float = Field(default=0.25, gt=0.0, le=1.0)
    ipo_bid_count: int = Field(default=2, ge=1)
    ipo_price_range: Tuple[float, float] = (1.00, 3.00)
    deployment: float = Field(default=0.90, gt=0.0, le=1.0)

    # Trading phase only
    trading_frequency: float = Field(default=0.1, ge=0.0, le=1.0)
    trend_sensitivity: float = Field(default=0.4, ge=0.0, le=1.0)
    rumor_sensitivity: float = Field(default=0.3, ge=0.0, le=1.0)
    liquidity_maintenance: bool = False

    @model_validator(mode='after')
    def validate_bounds(self):
        """Validate price and quantity bounds"""
        if self.min_price > self.max_price:
            raise ValueError(f"min_price {self.min_price} exceeds max_price {self.max_price}")
        if self.min_qty > self.max_qty:
            raise ValueError(f"min_qty {self.min_qty} exceeds max_qty {self.max_qty}")
        low, high = self.ipo_price_range
        if low <= 0 or low > high:
            raise ValueError(f"Invalid ipo_price_range: {self.ipo_price_range}")
        return self

    @property
    def anchor_price(self) -> float:
        """IPO price range interpolated by aggressiveness"""
        low, high = self.ipo_price_range
        return low + (high - low) * self.aggressiveness

    @property
    def display_name(self) -> str:
        return f"{self.archetype.value.capitalize()} Bot" if self.archetype != BotArchetype.CEO else "CEO Bot"


_PROFILES: Dict[BotArchetype, BotProfile] = {
    # Aggressive growth investors
    BotArchetype.AGGRESSIVE: BotProfile(
        archetype=BotArchetype.AGGRESSIVE,
        aggressiveness=0.8,
        concentration=0.3,
        min_price=1.50,
        max_price=4.00,
        ownership_cap_pct=0.20,
        ipo_bid_count=3,
        ipo_price_range=(2.00, 3.50),
        deployment=0.95,
        trading_frequency=0.15,
        trend_sensitivity=0.6,
    ),
    # Conservative value investors
    BotArchetype.CONSERVATIVE: BotProfile(
        archetype=BotArchetype.CONSERVATIVE,
        aggressiveness=0.3,
        concentration=0.6,
        min_price=0.75,
        max_price=2.50,
        ownership_cap_pct=0.15,
        ipo_bid_count=2,
        ipo_price_range=(1.00, 2.00),
        deployment=0.80,
        trading_frequency=0.05,
        trend_sensitivity=0.2,
    ),
    # Concentrated investors chasing control of one company
    BotArchetype.CEO: BotProfile(
        archetype=BotArchetype.CEO,
        aggressiveness=0.9,
        concentration=0.9,
        min_price=2.00,
        max_price=5.00,
        ownership_cap_pct=0.35,  # Can own up to 35% to become CEO
        ipo_bid_count=2,
        ipo_price_range=(2.50, 4.00),
        deployment=0.95,
        trading_frequency=0.1,
        trend_sensitivity=0.4,
    ),
    # Liquidity bots bidding near the floor on everything
    BotArchetype.SCAVENGER: BotProfile(
        archetype=BotArchetype.SCAVENGER,
        aggressiveness=0.9,
        concentration=0.0,
        min_price=0.90,
        max_price=1.25,
        ownership_cap_pct=0.34,  # Never reach the CEO threshold
        ipo_bid_count=1,
        ipo_price_range=(1.00, 1.20),
        deployment=0.80,
        trading_frequency=0.2,
        trend_sensitivity=0.1,
        liquidity_maintenance=True,
    ),
    # Balanced diversified investors
    BotArchetype.BALANCED: BotProfile(
        archetype=BotArchetype.BALANCED,
        aggressiveness=0.5,
        concentration=0.4,
        min_price=1.00,
        max_price=3.00,
        ownership_cap_pct=0.25,
        ipo_bid_count=2,
        ipo_price_range=(1.25, 2.50),
        deployment=0.90,
        trading_frequency=0.08,
        trend_sensitivity=0.4,
    ),
    # Momentum traders
    BotArchetype.MOMENTUM: BotProfile(
        archetype=BotArchetype.MOMENTUM,
        aggressiveness=0.7,
        concentration=0.5,
        min_price=1.25,
        max_price=4.50,
        ownership_cap_pct=0.18,
        ipo_bid_count=2,
        ipo_price_range=(1.50, 3.00),
        deployment=0.90,
        trading_frequency=0.12,
        trend_sensitivity=0.8,
        rumor_sensitivity=0.6,
    ),
}

BOT_PROFILES = MappingProxyType(_PROFILES)


class BotProfileRegistry:
    """Read-only lookup of bot profiles by archetype.

    Built once; later lookups never mutate the stored profiles.
    """

    def __init__(self, profiles: Dict[BotArchetype, BotProfile] = None):
        self._profiles = MappingProxyType(dict(profiles if profiles is not None else BOT_PROFILES))

    def get(self, archetype) -> BotProfile:
        """Get profile by archetype enum or its string value"""
        try:
            key = BotArchetype(archetype)
        except ValueError:
            raise KeyError(f"Unknown bot archetype: {archetype}. Available: {self.archetype_names()}")
        if key not in self._profiles:
            raise KeyError(f"No profile registered for archetype: {key.value}")
        return self._profiles[key]

    def __contains__(self, archetype) -> bool:
        try:
            return BotArchetype(archetype) in self._profiles
        except ValueError:
            return False

    def __iter__(self):
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def archetype_names(self) -> List[str]:
        return [archetype.value for archetype in self._profiles]


DEFAULT_REGISTRY = BotProfileRegistry()
