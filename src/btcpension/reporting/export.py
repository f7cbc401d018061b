"""Export functionality for CSV and JSON."""

import json
from dataclasses import asdict
from typing import Optional, Sequence

import pandas as pd

from ..config.schema import ScenarioConfig
from ..engine.accounting import SimulationPoint
from ..platform.aggregation import PlatformMonthlySnapshot


def points_to_dataframe(points: Sequence[SimulationPoint]) -> pd.DataFrame:
    """Snapshot series as a DataFrame, one row per snapshot, with derived year and LTV."""
    data = []
    for point in points:
        row = point.to_dict()
        row['ltv'] = point.ltv
        data.append(row)
    return pd.DataFrame(data)


def platform_snapshots_to_dataframe(snapshots: Sequence[PlatformMonthlySnapshot]) -> pd.DataFrame:
    """Platform revenue (and treasury, when present) snapshots as a DataFrame."""
    return pd.DataFrame([asdict(s) for s in snapshots])


def export_csv(points: Sequence[SimulationPoint], filepath: str):
    """Export a snapshot series to CSV."""
    df = points_to_dataframe(points)
    df.to_csv(filepath, index=False)


def export_platform_csv(snapshots: Sequence[PlatformMonthlySnapshot], filepath: str):
    """Export platform snapshots to CSV."""
    df = platform_snapshots_to_dataframe(snapshots)
    df.to_csv(filepath, index=False)


def export_json(
    points: Sequence[SimulationPoint],
    filepath: str,
    config: Optional[ScenarioConfig] = None
):
    """Export a snapshot series (and the config that produced it) to JSON."""
    final = points[-1] if points else None
    export_data = {
        'config': config.to_dict() if config is not None else None,
        'config_hash': config.compute_hash() if config is not None else None,
        'points': [point.to_dict() for point in points],
        'final_metrics': {
            'final_btc': final.btc_holding,
            'final_net_worth': final.net_worth,
            'final_real_net_worth': final.real_net_worth,
            'total_contrib': final.total_contrib,
        } if final is not None else {}
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
