import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from agents.bot_profiles import BotProfile
from agents.participant import Participant
from constants import DEFAULT_LOT_SIZE, FLOAT_TOLERANCE, MAX_COMPANIES_PER_BOT, PRICE_TICK
from market.company import Company
from services.logging_service import LoggingService


@dataclass
class BotBidPlan:
    """Price tiers one bot wants to place on one company"""
    company_id: str
    tiers: List[Tuple[float, int]] = field(default_factory=list)

    @property
    def cost(self) -> float:
        return sum(price * shares for price, shares in self.tiers)

    @property
    def shares(self) -> int:
        return sum(shares for _, shares in self.tiers)


class BotBidGenerator:
    """Derives each bot's IPO bids from its profile, capital and the company roster.

    Randomness comes from an injected numpy Generator so a seeded session
    replays identically; only the shape of the policy is guaranteed otherwise:
    - 1..4 distinct companies, fewer for concentrated profiles
    - 1..ipo_bid_count price tiers per company
    - prices anchored by aggressiveness, jittered, rounded to the tick, clamped
    - quantities in whole lots, within the ownership cap and remaining capital
    - a top-up pass so bots end up close to fully invested
    """

    def __init__(self,
                 lot_size: int = DEFAULT_LOT_SIZE,
                 price_tick: float = PRICE_TICK,
                 price_jitter: float = 0.20,
                 max_companies: int = MAX_COMPANIES_PER_BOT,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None,
                 logger=None):
        if lot_size <= 0:
            raise ValueError(f"Invalid lot_size: {lot_size}. Must be positive")
        if price_tick <= 0:
            raise ValueError(f"Invalid price_tick: {price_tick}. Must be positive")
        self.lot_size = lot_size
        self.price_tick = price_tick
        self.price_jitter = price_jitter
        self.max_companies = max_companies
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.logger = logger or LoggingService.get_logger('bots')

    def companies_to_bid_on(self, profile: BotProfile) -> int:
        """Concentrated profiles spread over fewer companies"""
        spread = round((1.0 - profile.concentration) * self.max_companies)
        return max(1, min(self.max_companies, spread))

    def bid_price(self, profile: BotProfile) -> float:
        """Anchor price plus bounded jitter, rounded to the tick and clamped to the profile bounds"""
        price = profile.anchor_price
        if self.price_jitter > 0:
            price += float(self.rng.uniform(-self.price_jitter, self.price_jitter))
        price = round(price / self.price_tick) * self.price_tick
        price = min(profile.max_price, max(profile.min_price, price))
        return round(price, 2)

    def _whole_lots(self, shares: float) -> int:
        if shares <= 0:
            return 0
        return int(math.floor(shares / self.lot_size)) * self.lot_size

    def _cap_room(self, bot: Participant, company: Company) -> int:
        """Shares the bot may still target in a company without crossing its ownership cap"""
        cap_shares = math.floor(bot.profile.ownership_cap_pct * company.total_shares)
        return max(0, cap_shares - bot.shares_of(company.company_id))

    def choose_companies(self, profile: BotProfile, companies: List[Company]) -> List[Company]:
        count = min(self.companies_to_bid_on(profile), len(companies))
        if count == 0:
            return []
        picks = self.rng.choice(len(companies), size=count, replace=False)
        return [companies[int(i)] for i in picks]

    def generate_bids(self, bot: Participant, session, available_capital: float) -> List[BotBidPlan]:
        """Build this round's bid plans for one bot.

        Args:
            bot: Bot participant (must carry a profile)
            session: Session providing the company roster
            available_capital: Capital not yet spent or committed to pending bids

        Returns:
            One plan per company the bot bids on; empty if it cannot afford a lot anywhere
        """
        if bot.is_human:
            raise ValueError(f"Participant {bot.participant_id} is not a bot")
        profile = bot.profile
        if available_capital <= FLOAT_TOLERANCE:
            return []

        chosen = self.choose_companies(profile, list(session.companies.values()))
        if not chosen:
            return []

        target = available_capital * profile.deployment
        per_company = target / len(chosen)
        remaining = available_capital
        plans: List[BotBidPlan] = []

        for company in chosen:
            plan = BotBidPlan(company.company_id)
            room = self._cap_room(bot, company)
            tier_count = int(self.rng.integers(1, profile.ipo_bid_count + 1))
            company_budget = per_company

            for i in range(tier_count):
                price = self.bid_price(profile)
                quantity = self._whole_lots(company_budget / (tier_count - i) / price)
                quantity = min(
                    quantity,
                    self._whole_lots(room - plan.shares),
                    self._whole_lots(remaining / price),
                )
                if quantity < self.lot_size:
                    self.logger.debug(
                        f"{bot.name}: discarded tier {i + 1} on {company.company_id} at ${price:.2f}"
                    )
                    continue
                self._add_to_plan(plan, price, quantity)
                company_budget -= price * quantity
                remaining -= price * quantity

            plans.append(plan)

        remaining = self._top_up(bot, session, plans, target, remaining)

        plans = [plan for plan in plans if plan.tiers]
        committed = sum(plan.cost for plan in plans)
        self.logger.info(
            f"{bot.name} ({profile.archetype.value}): {len(plans)} companies, "
            f"${committed:.2f} of ${available_capital:.2f} committed "
            f"({committed / available_capital:.0%})"
        )
        return plans

    def _top_up(self, bot: Participant, session, plans: List[BotBidPlan],
                target: float, remaining: float) -> float:
        """Add whole lots at each plan's cheapest tier until the deployment target is met"""
        committed = sum(plan.cost for plan in plans)
        progress = True
        while committed < target and progress:
            progress = False
            for plan in plans:
                if committed >= target:
                    break
                company = session.companies[plan.company_id]
                room = self._whole_lots(self._cap_room(bot, company) - plan.shares)
                if room < self.lot_size:
                    continue
                if plan.tiers:
                    price = min(p for p, _ in plan.tiers)
                else:
                    price = self.bid_price(bot.profile)
                lot_cost = price * self.lot_size
                if lot_cost - remaining > FLOAT_TOLERANCE:
                    continue
                self._add_to_plan(plan, price, self.lot_size)
                committed += lot_cost
                remaining -= lot_cost
                progress = True
        return remaining

    @staticmethod
    def _add_to_plan(plan: BotBidPlan, price: float, quantity: int):
        """Merge into an existing tier at the same price"""
        for i, (tier_price, tier_shares) in enumerate(plan.tiers):
            if abs(tier_price - price) < FLOAT_TOLERANCE:
                plan.tiers[i] = (tier_price, tier_shares + int(quantity))
                return
        plan.tiers.append((float(price), int(quantity)))
