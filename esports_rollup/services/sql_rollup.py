from typing import Optional
from datetime import date
import pandas as pd
from duckdb.sqltypes import DOUBLE
from .datastore import DataStore
from .formatter import round_value
from .logger import get_logger
from .stages import RANKED_COLUMNS
from esports_rollup.core.config import get_settings

log = get_logger(__name__)

# One CTE per stage; produces the same ranked rows as the DataFrame stages.
ROLLUP_SQL = """
WITH filtered AS (
  SELECT Date, Game, Earnings, CAST(Players AS BIGINT) AS Players, Tournaments
  FROM records
  WHERE CAST(Date AS TIMESTAMP) >= CAST(? AS TIMESTAMP)
    AND nullif(Earnings, 'NaN'::DOUBLE) > 0 AND nullif(Players, 'NaN'::DOUBLE) > 0
),
meta AS (
  SELECT Game, Genre, nullif(PercentOffline, 'NaN'::DOUBLE) AS PercentOffline
  FROM metadata
  WHERE Game IS NOT NULL
  QUALIFY ROW_NUMBER() OVER (PARTITION BY Game ORDER BY _row) = 1
),
enriched AS (
  SELECT f.Game, f.Earnings, f.Players, f.Tournaments,
         CAST(year(CAST(f.Date AS TIMESTAMP)) AS BIGINT) AS Year,
         f.Earnings / f.Players AS EarningsPerPlayer,
         m.Genre, CAST(m.PercentOffline AS DOUBLE) AS PercentOffline
  FROM filtered f
  JOIN meta m ON f.Game = m.Game
  WHERE m.Genre IS NOT NULL
),
game_year AS (
  SELECT Genre, Year, Game,
         SUM(Earnings) AS TotalEarningsPerGame,
         SUM(Players) AS TotalPlayersPerGame,
         SUM(Tournaments) AS TotalTournamentsPerGame,
         AVG(EarningsPerPlayer) AS AvgEarningsPerPlayer,
         AVG(PercentOffline) AS AvgOfflinePercentage
  FROM enriched
  GROUP BY Genre, Year, Game
),
genre_year AS (
  SELECT Genre, Year,
         SUM(TotalEarningsPerGame) AS TotalYearlyEarnings,
         CAST(SUM(TotalPlayersPerGame) AS BIGINT) AS TotalPlayers,
         CAST(SUM(TotalTournamentsPerGame) AS BIGINT) AS TotalTournaments,
         COUNT(DISTINCT Game) AS GameCount,
         AVG(AvgEarningsPerPlayer) AS AvgEarningsPerPlayer,
         AVG(AvgOfflinePercentage) AS AvgOfflinePercentage,
         first(Game ORDER BY TotalEarningsPerGame DESC, Game ASC) AS TopGame,
         first(TotalEarningsPerGame ORDER BY TotalEarningsPerGame DESC, Game ASC) AS TopGameEarnings
  FROM game_year
  GROUP BY Genre, Year
),
derived AS (
  SELECT *,
         CASE WHEN TotalTournaments > 0 THEN CAST(TotalPlayers AS DOUBLE) / TotalTournaments ELSE 0.0 END AS AvgTournamentSize,
         CASE WHEN TotalTournaments > 0 THEN TotalYearlyEarnings / TotalTournaments ELSE 0.0 END AS EarningsPerTournament
  FROM genre_year
)
SELECT *, RANK() OVER (PARTITION BY Year ORDER BY round_earnings(TotalYearlyEarnings) DESC) AS RankInYear
FROM derived
"""

def _round_earnings(value: float) -> float:
    return round_value(value)

def run_rollup_sql(store: DataStore, min_date: Optional[date] = None) -> pd.DataFrame:
    if store.empty:
        log.info("Nothing to rank: an input table is empty")
        return pd.DataFrame(columns=RANKED_COLUMNS)
    cutoff = min_date or get_settings().MIN_DATE
    con = store.connect()
    try:
        # same rounding as the output, so SQL and DataFrame ranks agree
        con.create_function("round_earnings", _round_earnings, [DOUBLE], DOUBLE)
        out = con.execute(" ".join(ROLLUP_SQL.split()), [cutoff]).fetchdf()
    finally:
        con.close()
    log.info(f"DuckDB rollup returned {len(out)} genre-year rows")
    return out[RANKED_COLUMNS]
