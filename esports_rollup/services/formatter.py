from decimal import Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import orjson
import pandas as pd
from esports_rollup.core.config import get_settings
from esports_rollup.models.schemas import GenreYearRanking

OUTPUT_COLUMNS = [
    "Year", "Genre", "RankInYear", "TopGame", "TopGameEarnings", "TotalYearlyEarnings",
    "TotalPlayers", "TotalTournaments", "GameCount", "AvgEarningsPerPlayer",
    "AvgTournamentSize", "EarningsPerTournament", "AvgOfflinePercentage",
]
ROUNDED_COLUMNS = [
    "TopGameEarnings", "TotalYearlyEarnings", "AvgEarningsPerPlayer",
    "AvgTournamentSize", "EarningsPerTournament", "AvgOfflinePercentage",
]
ROUNDING = {"half_even": ROUND_HALF_EVEN, "half_up": ROUND_HALF_UP}

def round_value(value: Any, digits: Optional[int] = None, mode: Optional[str] = None) -> Optional[float]:
    """
    Round on the shortest decimal repr of the float, so 2.675 is treated as
    written rather than as its binary neighbour 2.67499...
    """
    if value is None or pd.isna(value):
        return None
    s = get_settings()
    digits = s.ROUND_DIGITS if digits is None else digits
    rounding = ROUNDING[mode or s.ROUNDING_MODE]
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=rounding))

def format_results(ranked: pd.DataFrame, top_n: Optional[int] = None) -> pd.DataFrame:
    top_n = get_settings().TOP_N if top_n is None else top_n
    out = ranked[ranked["RankInYear"] <= top_n]
    # Genre only orders rows that share a rank
    out = out.sort_values(["Year", "RankInYear", "Genre"], ascending=[False, True, True], kind="mergesort")
    out = out.assign(**{c: out[c].map(round_value) for c in ROUNDED_COLUMNS})
    return out[OUTPUT_COLUMNS].reset_index(drop=True)

def to_rows(formatted: pd.DataFrame) -> List[Dict[str, Any]]:
    rows = []
    for r in formatted.to_dict(orient="records"):
        rows.append({k: (None if pd.isna(v) else v) for k, v in r.items()})
    return rows

def to_models(formatted: pd.DataFrame) -> List[GenreYearRanking]:
    return [GenreYearRanking(**r) for r in to_rows(formatted)]

def to_json(formatted: pd.DataFrame) -> bytes:
    return orjson.dumps(to_rows(formatted))
