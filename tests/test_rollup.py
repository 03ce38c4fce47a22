from datetime import date

import pandas as pd
import pytest

from esports_rollup.core.config import get_settings
from esports_rollup.models.schemas import GameMetadata, GenreYearRanking, SourceRecord
from esports_rollup.services.datastore import InputValidationError, normalize_metadata, normalize_records
from esports_rollup.services.rollup import rollup_json, rollup_models, rollup_rows, run_rollup
from esports_rollup.services.stages import aggregate_game_year, filter_records, join_metadata

GENRES = ["MOBA", "Shooter", "Fighting", "Strategy", "Racing", "Sports", "Card", "Puzzle"]

META = [{"Game": f"{g} {i}", "Genre": g, "PercentOffline": 10 * i + 5}
        for g in GENRES for i in range(1, 4)]


def _records():
    rows = []
    for year in (2016, 2019, 2022):
        for gi, g in enumerate(GENRES):
            for i in range(1, 4):
                rows.append({
                    "Date": f"{year}-0{i}-15", "Game": f"{g} {i}",
                    "Earnings": 1000 * (gi + 1) + 250 * i, "Players": 4 * i + gi, "Tournaments": i - 1,
                })
    # Card catches up with Puzzle in 2019 (25500 each); the zero-earnings row is filtered
    rows.append({"Date": "2019-11-01", "Game": "Card 1", "Earnings": 3000, "Players": 2, "Tournaments": 1})
    rows.append({"Date": "2019-11-01", "Game": "Puzzle 1", "Earnings": 0, "Players": 2, "Tournaments": 1})
    rows.append({"Date": "2014-12-31", "Game": "MOBA 1", "Earnings": 10 ** 9, "Players": 1, "Tournaments": 1})
    return rows


ALPHA = [{"Date": "2020-06-01", "Game": "Alpha", "Earnings": 1000, "Players": 10, "Tournaments": 2}]
ALPHA_META = [{"Game": "Alpha", "Genre": "MOBA", "PercentOffline": 0}]


def test_alpha_scenario():
    assert rollup_rows(ALPHA, ALPHA_META) == [{
        "Year": 2020, "Genre": "MOBA", "RankInYear": 1, "TopGame": "Alpha",
        "TopGameEarnings": 1000.0, "TotalYearlyEarnings": 1000.0, "TotalPlayers": 10,
        "TotalTournaments": 2, "GameCount": 1, "AvgEarningsPerPlayer": 100.0,
        "AvgTournamentSize": 5.0, "EarningsPerTournament": 500.0, "AvgOfflinePercentage": 0.0,
    }]


def test_record_before_cutoff_is_excluded():
    old = [dict(ALPHA[0], Date="2014-12-31", Earnings=10 ** 6)]
    assert rollup_rows(old, ALPHA_META) == []
    assert rollup_rows(old + ALPHA, ALPHA_META)[0]["TotalYearlyEarnings"] == 1000.0


def test_tied_genres_share_rank():
    records = [
        {"Date": "2021-03-01", "Game": "A", "Earnings": 500, "Players": 5, "Tournaments": 1},
        {"Date": "2021-03-01", "Game": "B", "Earnings": 500, "Players": 5, "Tournaments": 1},
        {"Date": "2021-03-01", "Game": "C", "Earnings": 200, "Players": 5, "Tournaments": 1},
    ]
    meta = [{"Game": "A", "Genre": "MOBA"}, {"Game": "B", "Genre": "Shooter"}, {"Game": "C", "Genre": "Fighting"}]
    rows = rollup_rows(records, meta)
    assert [(r["Genre"], r["RankInYear"]) for r in rows] == [("MOBA", 1), ("Shooter", 1), ("Fighting", 3)]


def test_rank_bounds_and_order():
    rows = rollup_rows(_records(), META)
    assert rows
    assert all(1 <= r["RankInYear"] <= 5 for r in rows)
    keys = [(-r["Year"], r["RankInYear"]) for r in rows]
    assert keys == sorted(keys)
    assert [r["Year"] for r in rows if r["RankInYear"] == 1][0] == 2022
    by_year = {}
    for r in rows:
        by_year.setdefault(r["Year"], []).append(r)
    for year_rows in by_year.values():
        for a in year_rows:
            for b in year_rows:
                if a["TotalYearlyEarnings"] == b["TotalYearlyEarnings"]:
                    assert a["RankInYear"] == b["RankInYear"]


def test_sum_invariant():
    game_year = aggregate_game_year(join_metadata(filter_records(normalize_records(_records())),
                                                  normalize_metadata(META)))
    expected = game_year.groupby(["Genre", "Year"])["TotalEarningsPerGame"].sum()
    for r in rollup_rows(_records(), META):
        assert r["TotalYearlyEarnings"] == pytest.approx(round(expected[(r["Genre"], r["Year"])], 2))


def test_zero_tournaments_gives_zero_ratios():
    records = [dict(ALPHA[0], Tournaments=0)]
    row = rollup_rows(records, ALPHA_META)[0]
    assert row["AvgTournamentSize"] == 0
    assert row["EarningsPerTournament"] == 0


def test_idempotent():
    assert rollup_json(_records(), META) == rollup_json(_records(), META)


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
def test_top_game_ignores_input_order(engine):
    records = [
        {"Date": "2020-01-01", "Game": "Zulu", "Earnings": 700, "Players": 7, "Tournaments": 1},
        {"Date": "2020-01-01", "Game": "Echo", "Earnings": 700, "Players": 7, "Tournaments": 1},
    ]
    meta = [{"Game": "Zulu", "Genre": "MOBA"}, {"Game": "Echo", "Genre": "MOBA"}]
    assert rollup_rows(records, meta, engine=engine)[0]["TopGame"] == "Echo"
    assert rollup_rows(list(reversed(records)), meta, engine=engine)[0]["TopGame"] == "Echo"


@pytest.mark.parametrize("records", [_records(), ALPHA])
def test_engines_agree(records):
    meta = META + ALPHA_META
    assert rollup_rows(records, meta, engine="pandas") == rollup_rows(records, meta, engine="duckdb")


def test_engines_agree_on_missing_offline_values():
    meta = [{"Game": "Alpha", "Genre": "MOBA", "PercentOffline": None}]
    pandas_rows = rollup_rows(ALPHA, meta, engine="pandas")
    assert pandas_rows[0]["AvgOfflinePercentage"] is None
    assert pandas_rows == rollup_rows(ALPHA, meta, engine="duckdb")


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
def test_empty_inputs(engine):
    assert rollup_rows([], ALPHA_META, engine=engine) == []
    assert rollup_rows(ALPHA, [], engine=engine) == []
    old = [dict(ALPHA[0], Date="2010-01-01")]
    assert rollup_rows(old, ALPHA_META, engine=engine) == []


def test_unknown_engine_raises():
    with pytest.raises(InputValidationError):
        rollup_rows(ALPHA, ALPHA_META, engine="spark")


def test_unparsable_date_raises_before_processing():
    with pytest.raises(InputValidationError):
        rollup_rows(ALPHA + [dict(ALPHA[0], Date="31/31/2020")], ALPHA_META)


def test_missing_column_raises():
    with pytest.raises(InputValidationError):
        rollup_rows([{"Date": "2020-01-01", "Game": "Alpha", "Players": 1}], ALPHA_META)


def test_accepts_models_and_frames():
    records = [SourceRecord(Date=date(2020, 6, 1), Game="Alpha", Earnings=1000, Players=10, Tournaments=2)]
    meta = [GameMetadata(Game="Alpha", Genre="MOBA", PercentOffline=0)]
    from_models = rollup_rows(records, meta)
    from_frames = rollup_rows(pd.DataFrame(ALPHA).assign(Date=lambda d: pd.to_datetime(d["Date"])),
                              pd.DataFrame(ALPHA_META))
    assert from_models == from_frames == rollup_rows(ALPHA, ALPHA_META)


def test_models_output():
    out = rollup_models(ALPHA, ALPHA_META)
    assert isinstance(out[0], GenreYearRanking)
    assert out[0].TopGame == "Alpha"
    assert out[0].AvgTournamentSize == 5.0


def test_top_n_and_engine_from_settings(monkeypatch):
    monkeypatch.setattr(get_settings(), "TOP_N", 2)
    monkeypatch.setattr(get_settings(), "ENGINE", "duckdb")
    out = run_rollup(_records(), META)
    assert out["RankInYear"].max() <= 2
    assert set(out["Year"]) == {2016, 2019, 2022}


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
@pytest.mark.parametrize("players", [0.5, 2.5, float("inf")])
def test_fractional_players_do_not_qualify(engine, players):
    records = ALPHA + [dict(ALPHA[0], Players=players, Earnings=5000)]
    rows = rollup_rows(records, ALPHA_META, engine=engine)
    assert rows == rollup_rows(ALPHA, ALPHA_META, engine=engine)


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
def test_fractional_tournaments_count_as_zero(engine):
    row = rollup_rows([dict(ALPHA[0], Tournaments=1.5)], ALPHA_META, engine=engine)[0]
    assert row["TotalTournaments"] == 0
    assert row["AvgTournamentSize"] == 0


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
def test_infinite_earnings_do_not_qualify(engine):
    rows = rollup_rows(ALPHA + [dict(ALPHA[0], Earnings=float("inf"))], ALPHA_META, engine=engine)
    assert rows[0]["TotalYearlyEarnings"] == 1000.0


@pytest.mark.parametrize("engine", ["pandas", "duckdb"])
def test_earnings_equal_at_output_precision_share_rank(engine):
    records = [
        {"Date": "2020-01-01", "Game": "A1", "Earnings": 0.1, "Players": 1, "Tournaments": 1},
        {"Date": "2020-02-01", "Game": "A2", "Earnings": 0.2, "Players": 1, "Tournaments": 1},
        {"Date": "2020-01-01", "Game": "B", "Earnings": 0.3, "Players": 1, "Tournaments": 1},
        {"Date": "2020-01-01", "Game": "C", "Earnings": 0.1, "Players": 1, "Tournaments": 1},
    ]
    meta = [{"Game": "A1", "Genre": "MOBA"}, {"Game": "A2", "Genre": "MOBA"},
            {"Game": "B", "Genre": "Shooter"}, {"Game": "C", "Genre": "Fighting"}]
    rows = rollup_rows(records, meta, engine=engine)
    assert [(r["Genre"], r["RankInYear"], r["TotalYearlyEarnings"]) for r in rows] == [
        ("MOBA", 1, 0.3), ("Shooter", 1, 0.3), ("Fighting", 3, 0.1),
    ]
