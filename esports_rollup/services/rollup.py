from typing import Any, Callable, Dict, List, Optional
import pandas as pd
from .datastore import DataStore, InputValidationError, Rows
from .formatter import format_results, to_json, to_models, to_rows
from .logger import get_logger, log_stage, timeblock
from .sql_rollup import run_rollup_sql
from .stages import (aggregate_game_year, aggregate_genre_year, derive_metrics,
                     filter_records, join_metadata, rank_genres)
from esports_rollup.core.config import get_settings
from esports_rollup.models.schemas import GenreYearRanking

log = get_logger(__name__)

def run_rollup_pandas(store: DataStore) -> pd.DataFrame:
    filtered = filter_records(store.records)
    log_stage(log, "filter", len(store.records), len(filtered))
    enriched = join_metadata(filtered, store.metadata)
    log_stage(log, "join", len(filtered), len(enriched))
    game_year = aggregate_game_year(enriched)
    log_stage(log, "game-year", len(enriched), len(game_year))
    genre_year = aggregate_genre_year(game_year)
    log_stage(log, "genre-year", len(game_year), len(genre_year))
    return rank_genres(derive_metrics(genre_year))

ENGINES: Dict[str, Callable[[DataStore], pd.DataFrame]] = {
    "pandas": run_rollup_pandas,
    "duckdb": run_rollup_sql,
}

def _engine(name: Optional[str]) -> Callable[[DataStore], pd.DataFrame]:
    key = (name or get_settings().ENGINE).strip().lower()
    if key not in ENGINES:
        raise InputValidationError(f"Unknown engine '{key}'. Expected one of: {', '.join(ENGINES)}")
    return ENGINES[key]

def run_rollup(records: Rows, metadata: Rows, engine: Optional[str] = None) -> pd.DataFrame:
    """Top genres per year, formatted and limited to the configured top N."""
    rank = _engine(engine)
    # inputs are validated in full before any stage runs
    store = DataStore(records, metadata)
    with timeblock(log, rank.__name__):
        ranked = rank(store)
    out = format_results(ranked)
    log.info(f"Rollup produced {len(out)} rows across {out['Year'].nunique()} year(s)")
    return out

def rollup_rows(records: Rows, metadata: Rows, engine: Optional[str] = None) -> List[Dict[str, Any]]:
    return to_rows(run_rollup(records, metadata, engine))

def rollup_models(records: Rows, metadata: Rows, engine: Optional[str] = None) -> List[GenreYearRanking]:
    return to_models(run_rollup(records, metadata, engine))

def rollup_json(records: Rows, metadata: Rows, engine: Optional[str] = None) -> bytes:
    return to_json(run_rollup(records, metadata, engine))
