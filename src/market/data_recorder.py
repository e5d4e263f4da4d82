from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd


class DataRecorder:
    """Collects round results and ledger states as rows and exports them with pandas.

    Used by the CLI runners; the engine itself never writes files.
    """

    def __init__(self, session, accountant, data_dir: Optional[Path] = None):
        self.session = session
        self.accountant = accountant
        self.data_dir = data_dir

        self.allocation_data: List[Dict[str, Any]] = []
        self.company_data: List[Dict[str, Any]] = []
        self.ledger_data: List[Dict[str, Any]] = []
        self.position_data: List[Dict[str, Any]] = []

    def record_round(self, round_result, prices: Optional[Mapping[str, float]] = None):
        """Record clearing outcomes and the post-settlement ledger for one round"""
        timestamp = datetime.now().isoformat()
        round_number = round_result.round_number

        for company_id, result in round_result.results.items():
            company = self.session.get_company(company_id)
            self.company_data.append({
                'timestamp': timestamp,
                'round': round_number,
                'company_id': company_id,
                'name': company.name,
                'clearing_price': result.clearing_price,
                'supply': result.supply,
                'shares_requested': result.shares_requested,
                'shares_sold': result.shares_allocated,
                'unsold_shares': result.unsold_shares,
                'oversubscription': result.oversubscription,
                'revenue': result.revenue,
                'bids_received': result.bids_received,
                'ceo_id': company.ceo_id,
                'forced': round_result.forced,
            })
            for allocation in result.allocations:
                participant = self.session.get_participant(allocation.participant_id)
                self.allocation_data.append({
                    'timestamp': timestamp,
                    'round': round_number,
                    'company_id': company_id,
                    'participant_id': participant.participant_id,
                    'participant_type': participant.participant_type,
                    'shares_allocated': allocation.shares_allocated,
                    'clearing_price': allocation.clearing_price,
                    'cost': allocation.cost,
                })

        self._record_ledger(round_number, timestamp, prices)

    def _record_ledger(self, round_number: int, timestamp: str, prices):
        for participant in self.session.participants.values():
            summary = self.accountant.position_summary(participant, prices)
            self.ledger_data.append({
                'timestamp': timestamp,
                'round': round_number,
                'participant_id': participant.participant_id,
                'name': participant.name,
                'participant_type': participant.participant_type,
                'initial_capital': participant.initial_capital,
                'cash': participant.cash,
                'total_spent': participant.total_spent,
                'deployment': (participant.total_spent / participant.initial_capital
                               if participant.initial_capital > 0 else 0.0),
                'net_worth': summary['net_worth'],
                'total_pnl': summary['total_pnl'],
            })
            for company_id, position in summary['positions'].items():
                self.position_data.append({
                    'round': round_number,
                    'participant_id': participant.participant_id,
                    'company_id': company_id,
                    **position,
                })

    def allocations_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.allocation_data)

    def companies_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.company_data)

    def ledger_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.ledger_data)

    def positions_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.position_data)

    def deployment_by_type(self) -> pd.DataFrame:
        """Mean and minimum capital deployment per participant type in the latest round"""
        ledger = self.ledger_frame()
        if ledger.empty:
            return ledger
        latest = ledger[ledger['round'] == ledger['round'].max()]
        return latest.groupby('participant_type')['deployment'].agg(['mean', 'min', 'count'])

    def save(self, data_dir: Optional[Path] = None) -> Path:
        """Write every table to CSV under ``data_dir``"""
        data_path = Path(data_dir or self.data_dir or 'data')
        data_path.mkdir(parents=True, exist_ok=True)

        self.allocations_frame().to_csv(data_path / 'ipo_allocations.csv', index=False)
        self.companies_frame().to_csv(data_path / 'company_summary.csv', index=False)
        self.ledger_frame().to_csv(data_path / 'ledger.csv', index=False)
        self.positions_frame().to_csv(data_path / 'positions.csv', index=False)
        return data_path
