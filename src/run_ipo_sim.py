import hashlib
import json
from datetime import datetime
from pathlib import Path

from market.data_recorder import DataRecorder
from market.engine.engine_settings import EngineSettings
from market.engine.ipo_engine import IPOEngine
from scenarios import get_scenario, list_scenarios
from services.logging_service import LoggingService


def compute_config_hash(parameters: dict) -> str:
    """Compute SHA-256 hash of configuration for reproducibility verification."""
    config_str = json.dumps(parameters, sort_keys=True, default=str)
    return hashlib.sha256(config_str.encode()).hexdigest()


def create_run_directory(sim_type: str, description: str = "", parameters: dict = None) -> Path:
    """Create logs/<scenario>/<timestamp>/ with a metadata file"""
    date_str = datetime.now().strftime('%Y%m%d_%H%M%S')
    run_dir = Path('logs') / sim_type / date_str
    run_dir.mkdir(parents=True, exist_ok=True)

    metadata = {
        'sim_type': sim_type,
        'description': description,
        'timestamp': date_str,
        'run_id': f"{sim_type}_{date_str}",
        'config_hash': compute_config_hash(parameters) if parameters else None,
        'parameters': parameters
    }
    with open(run_dir / 'metadata.json', 'w') as f:
        json.dump(metadata, f, indent=4, default=str)
    return run_dir


def parse_bid(text: str):
    """'company_1:300:2.75' -> ('company_1', 300, 2.75)"""
    try:
        company_id, shares, price = text.split(':')
        return company_id, int(shares), float(price)
    except ValueError:
        raise ValueError(f"Invalid bid '{text}'. Expected COMPANY:SHARES:PRICE")


def print_newspaper(completion):
    print(f"\n=== IPO Results: round {completion.round_number}"
          f"{' (forced)' if completion.forced else ''} ===")
    for report in completion.companies:
        ceo = report.ceo_name or "none"
        print(f"{report.name:<22} ${report.clearing_price:>5.2f}  "
              f"sold {report.shares_sold:>5}/{report.shares_offered:<5} "
              f"unsold {report.unsold_shares:>4}  "
              f"oversubscribed {report.oversubscription:>4.1f}x  CEO: {ceo}")
    for violation in completion.violations:
        print(f"LEDGER VIOLATION: {violation}")


def run_scenario(scenario_name: str, seed: int = None, human_bids=None, save: bool = True):
    """Run one IPO round of a scenario headlessly"""
    scenario = get_scenario(scenario_name)
    params = dict(scenario.parameters)
    if seed is not None:
        params["RANDOM_SEED"] = seed
    # Headless runs close the round explicitly
    params["BIDDING_WINDOW_SEC"] = None

    run_dir = create_run_directory(scenario.name, scenario.description, params) if save else None
    if run_dir is not None:
        LoggingService.initialize(run_id=run_dir.name, base_dir=run_dir.parent)

    settings = EngineSettings.from_params(params)
    engine = IPOEngine(settings)
    completions = []
    engine.subscribe(completions.append)

    session = engine.create_session(
        scenario.name, scenario.company_specs(), scenario.participant_specs(),
        seed=params["RANDOM_SEED"],
    )
    controller = engine.controller(session.session_id)
    recorder = DataRecorder(session, controller.accountant, run_dir / 'data' if run_dir else None)

    try:
        engine.start_round(session.session_id)
        humans = session.humans
        for company_id, shares, price in human_bids or []:
            if not humans:
                print("Scenario has no human participant; ignoring bids")
                break
            result = engine.submit_bid(session.session_id, humans[0].participant_id,
                                       company_id, shares, price)
            status = "accepted" if result.accepted else f"rejected ({result.reason.value})"
            print(f"Bid {shares} {company_id} @ ${price:.2f}: {status} - {result.message}")

        engine.close_round(session.session_id)
        round_result = engine.wait_for_round(session.session_id,
                                             timeout=settings.clearing_timeout_sec + 5)
        if round_result is not None:
            recorder.record_round(round_result)

        for completion in completions:
            print_newspaper(completion)

        print("\n=== Ledger ===")
        for participant_id, entry in engine.ledger_snapshot(session.session_id).items():
            participant = session.get_participant(participant_id)
            print(f"{participant.name:<22} Cash: ${entry.cash:>9.2f}  "
                  f"Spent: ${entry.total_spent:>9.2f}  Net worth: ${entry.net_worth:>9.2f}  "
                  f"Shares: {entry.shares}")

        if run_dir is not None:
            data_path = recorder.save()
            print(f"\nData saved to: {data_path}")
    finally:
        engine.shutdown()
        LoggingService.shutdown()
    return completions


def main():
    """
    Run an IPO scenario by name, or list the available ones.
    """
    import argparse

    parser = argparse.ArgumentParser(description="Run a headless IPO auction scenario.")
    parser.add_argument(
        "scenario",
        nargs='?',
        default=None,
        help="The name of the scenario to run. If not provided, lists available scenarios."
    )
    parser.add_argument(
        "-l", "--list",
        action="store_true",
        help="List all available scenarios and their descriptions."
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override the scenario's random seed"
    )
    parser.add_argument(
        "--bid",
        action="append",
        default=[],
        metavar="COMPANY:SHARES:PRICE",
        help="Submit a bid for the first human participant (repeatable)"
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not write logs or data files"
    )
    args = parser.parse_args()

    if args.list or args.scenario is None:
        print("\nAvailable scenarios:")
        for name, description in list_scenarios().items():
            print(f"  {name}: {description}")
        return

    human_bids = [parse_bid(text) for text in args.bid]
    run_scenario(args.scenario, seed=args.seed, human_bids=human_bids, save=not args.no_save)


if __name__ == "__main__":
    main()
