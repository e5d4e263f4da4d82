import logging
from pathlib import Path

import pandas as pd
from tqdm import tqdm

from market.engine.engine_settings import EngineSettings
from market.engine.ipo_engine import IPOEngine
from scenarios import get_scenario

LATEST_DIR = Path('logs') / 'bot_sweep'


def sweep_deployment(scenario_name: str = "bot_only_sweep", num_seeds: int = 50,
                     first_seed: int = 0) -> pd.DataFrame:
    """Run one IPO round per seed and record every bot's capital deployment.

    Deployment is measured on the committed bids, before clearing, so it
    reflects the generation policy rather than auction luck.
    """
    scenario = get_scenario(scenario_name)
    params = {
        **scenario.parameters,
        "PROCESSING_DELAY_SEC": 0.0,
        "BIDDING_WINDOW_SEC": None,
    }
    settings = EngineSettings.from_params(params)
    rows = []

    with tqdm(total=num_seeds, desc="Sweeping seeds") as pbar:
        for seed in range(first_seed, first_seed + num_seeds):
            engine = IPOEngine(settings)
            session_id = f"sweep_{seed}"
            try:
                session = engine.create_session(
                    session_id, scenario.company_specs(), scenario.participant_specs(), seed=seed
                )
                engine.start_round(session_id)
                engine.close_round(session_id)
                round_result = engine.wait_for_round(session_id, timeout=settings.clearing_timeout_sec)

                for bot in session.bots:
                    accepted = [r for r in round_result.bot_bids.get(bot.participant_id, []) if r.accepted]
                    committed = sum(r.slot.cost for r in accepted)
                    rows.append({
                        'seed': seed,
                        'participant_id': bot.participant_id,
                        'archetype': bot.profile.archetype.value,
                        'companies': len(accepted),
                        'committed': committed,
                        'deployment': committed / bot.initial_capital,
                        'allocated_spend': bot.total_spent,
                    })
            finally:
                engine.shutdown()
            pbar.update(1)

    return pd.DataFrame(rows)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Measure bot capital deployment across many seeded IPO rounds."
    )
    parser.add_argument("--scenario", default="bot_only_sweep", help="Scenario to sweep.")
    parser.add_argument("--seeds", type=int, default=50, help="Number of seeds to run.")
    parser.add_argument("--first-seed", type=int, default=0, help="First seed of the sweep.")
    args = parser.parse_args()

    # Keep the progress bar readable
    logging.getLogger('ipo').setLevel(logging.ERROR)

    df = sweep_deployment(args.scenario, args.seeds, args.first_seed)

    LATEST_DIR.mkdir(parents=True, exist_ok=True)
    df.to_csv(LATEST_DIR / 'deployment.csv', index=False)

    print("\nDeployment by archetype:")
    pivot_table = pd.pivot_table(
        df,
        values="deployment",
        index="archetype",
        aggfunc=["mean", "min", "count"],
    )
    print(pivot_table)

    print("\nCompanies bid on by archetype:")
    print(pd.pivot_table(df, values="companies", index="archetype", aggfunc="mean"))
    print(f"\nResults saved to: {LATEST_DIR / 'deployment.csv'}")
