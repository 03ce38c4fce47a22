"""
Pure DataFrame stages of the genre-year rollup.

Each stage takes the previous stage's frame and returns a new one; inputs are
never modified in place. Composite group keys are column tuples, so two games
whose names concatenate to the same string can never collide.
"""
from typing import List, Optional
from datetime import date
import pandas as pd
from .formatter import round_value
from .logger import get_logger
from esports_rollup.core.config import get_settings

log = get_logger(__name__)

GAME_KEYS = ["Genre", "Year", "Game"]
GENRE_KEYS = ["Genre", "Year"]

ENRICHED_COLUMNS = ["Date", "Game", "Earnings", "Players", "Tournaments",
                    "Year", "EarningsPerPlayer", "Genre", "PercentOffline"]
GAME_YEAR_COLUMNS = GAME_KEYS + ["TotalEarningsPerGame", "TotalPlayersPerGame", "TotalTournamentsPerGame",
                                 "AvgEarningsPerPlayer", "AvgOfflinePercentage"]
GENRE_YEAR_COLUMNS = GENRE_KEYS + ["TotalYearlyEarnings", "TotalPlayers", "TotalTournaments", "GameCount",
                                   "AvgEarningsPerPlayer", "AvgOfflinePercentage", "TopGame", "TopGameEarnings"]
DERIVED_COLUMNS = GENRE_YEAR_COLUMNS + ["AvgTournamentSize", "EarningsPerTournament"]
RANKED_COLUMNS = DERIVED_COLUMNS + ["RankInYear"]

def _empty(columns: List[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=columns)

def filter_records(records: pd.DataFrame, min_date: Optional[date] = None) -> pd.DataFrame:
    cutoff = pd.Timestamp(min_date or get_settings().MIN_DATE)
    # NaN/NaT never satisfy a comparison, so incomplete records fall out here
    keep = (records["Date"] >= cutoff) & (records["Earnings"] > 0) & (records["Players"] > 0)
    return records.loc[keep].astype({"Players": "int64"})

def build_metadata_index(metadata: pd.DataFrame) -> pd.DataFrame:
    """Game -> (Genre, PercentOffline); the first row wins on duplicate titles."""
    known = metadata[metadata["Game"].notna()]
    index = known.drop_duplicates(subset="Game", keep="first")
    dupes = len(known) - len(index)
    if dupes:
        log.debug(f"Ignored {dupes} duplicate metadata row(s)")
    return index.set_index("Game")[["Genre", "PercentOffline"]]

def join_metadata(records: pd.DataFrame, metadata: pd.DataFrame) -> pd.DataFrame:
    index = build_metadata_index(metadata)
    enriched = records.assign(
        Genre=records["Game"].map(index["Genre"]),
        PercentOffline=records["Game"].map(index["PercentOffline"]).astype("float64"),
    )
    # unmatched titles and titles without a genre are dropped, not errors
    enriched = enriched[enriched["Genre"].notna()]
    enriched = enriched.assign(
        Year=enriched["Date"].dt.year.astype("int64"),
        EarningsPerPlayer=enriched["Earnings"] / enriched["Players"],
    )
    return enriched[ENRICHED_COLUMNS]

def aggregate_game_year(enriched: pd.DataFrame) -> pd.DataFrame:
    if enriched.empty:
        return _empty(GAME_YEAR_COLUMNS)
    out = (enriched.groupby(GAME_KEYS, sort=False)
           .agg(TotalEarningsPerGame=("Earnings", "sum"),
                TotalPlayersPerGame=("Players", "sum"),
                TotalTournamentsPerGame=("Tournaments", "sum"),
                # mean of per-record ratios, not total earnings / total players
                AvgEarningsPerPlayer=("EarningsPerPlayer", "mean"),
                AvgOfflinePercentage=("PercentOffline", "mean"))
           .reset_index())
    return out[GAME_YEAR_COLUMNS]

def aggregate_genre_year(game_year: pd.DataFrame) -> pd.DataFrame:
    if game_year.empty:
        return _empty(GENRE_YEAR_COLUMNS)
    # stable sort; equal earnings fall back to the title so TopGame never depends on input order
    ordered = game_year.sort_values(["TotalEarningsPerGame", "Game"], ascending=[False, True], kind="mergesort")
    out = (ordered.groupby(GENRE_KEYS, sort=False)
           .agg(TotalYearlyEarnings=("TotalEarningsPerGame", "sum"),
                TotalPlayers=("TotalPlayersPerGame", "sum"),
                TotalTournaments=("TotalTournamentsPerGame", "sum"),
                GameCount=("Game", "nunique"),
                AvgEarningsPerPlayer=("AvgEarningsPerPlayer", "mean"),
                AvgOfflinePercentage=("AvgOfflinePercentage", "mean"),
                TopGame=("Game", "first"),
                TopGameEarnings=("TotalEarningsPerGame", "first"))
           .reset_index())
    return out[GENRE_YEAR_COLUMNS]

def derive_metrics(genre_year: pd.DataFrame) -> pd.DataFrame:
    if genre_year.empty:
        return _empty(DERIVED_COLUMNS)
    played = genre_year["TotalTournaments"] > 0
    tournaments = genre_year["TotalTournaments"].where(played).astype("float64")
    return genre_year.assign(
        AvgTournamentSize=(genre_year["TotalPlayers"] / tournaments).where(played, 0.0),
        EarningsPerTournament=(genre_year["TotalYearlyEarnings"] / tournaments).where(played, 0.0),
    )

def rank_genres(derived: pd.DataFrame) -> pd.DataFrame:
    """
    Competition rank per Year by rounded TotalYearlyEarnings, highest first.

    Needs the whole Year partition: tied earnings share a rank and the next
    distinct value skips ahead (1, 1, 3).
    """
    if derived.empty:
        return _empty(RANKED_COLUMNS)
    # rank on the output precision so equal printed earnings share a rank
    earnings = derived["TotalYearlyEarnings"].map(round_value).astype("float64")
    ranks = earnings.groupby(derived["Year"]).rank(method="min", ascending=False)
    return derived.assign(RankInYear=ranks.astype("int64"))
