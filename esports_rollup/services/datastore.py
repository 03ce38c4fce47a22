import pandas as pd
from datetime import date
import duckdb
from typing import Any, Iterable, List, Union
from pydantic import BaseModel
from .logger import get_logger

log = get_logger(__name__)

RECORD_COLUMNS = ["Date", "Game", "Earnings", "Players", "Tournaments"]
METADATA_COLUMNS = ["Game", "Genre", "PercentOffline"]

Rows = Union[pd.DataFrame, Iterable[Any]]

class InputValidationError(ValueError):
    """Raised before any stage runs when an input table cannot be processed."""

def _to_frame(data: Rows, columns: List[str]) -> pd.DataFrame:
    if isinstance(data, pd.DataFrame):
        return data.copy()
    rows = []
    for item in data:
        if isinstance(item, BaseModel):
            rows.append(item.model_dump())
        else:
            rows.append(dict(item))
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows)

def _require(df: pd.DataFrame, columns: List[str], table: str):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InputValidationError(f"{table} is missing required column(s): {', '.join(missing)}")

def _as_object(s: pd.Series) -> pd.Series:
    return s.astype(object).where(s.notna(), None)

def _parse_dates(raw: pd.Series) -> pd.Series:
    if not pd.api.types.is_datetime64_any_dtype(raw):
        # date objects and ISO strings share one parse path
        raw = raw.map(lambda v: v.isoformat() if isinstance(v, date) else v)
        # blank strings count as missing, not malformed
        raw = raw.where(raw.astype(str).str.strip() != "")
    parsed = pd.to_datetime(raw, errors="coerce", format="ISO8601", utc=True).dt.tz_localize(None)
    bad = raw.notna() & parsed.isna()
    if bad.any():
        sample = raw[bad].iloc[0]
        raise InputValidationError(f"Unparsable Date in {int(bad.sum())} record(s), e.g. {sample!r}")
    return parsed

def _whole_counts(s: pd.Series) -> pd.Series:
    # fractional or infinite counts are malformed
    n = pd.to_numeric(s, errors="coerce").astype("float64")
    return n.where(n % 1 == 0)

def normalize_records(data: Rows) -> pd.DataFrame:
    df = _to_frame(data, RECORD_COLUMNS)
    _require(df, ["Date", "Game", "Earnings", "Players"], "records")
    if "Tournaments" not in df.columns:
        df["Tournaments"] = 0
    df = df[RECORD_COLUMNS].reset_index(drop=True).copy()
    df["Date"] = _parse_dates(df["Date"])
    df["Game"] = _as_object(df["Game"])
    # malformed numbers become NaN and fail the filter predicates
    earnings = pd.to_numeric(df["Earnings"], errors="coerce").astype("float64")
    df["Earnings"] = earnings.where(earnings.abs() != float("inf"))
    df["Players"] = _whole_counts(df["Players"])
    df["Tournaments"] = _whole_counts(df["Tournaments"]).fillna(0).astype("int64")
    return df

def normalize_metadata(data: Rows) -> pd.DataFrame:
    df = _to_frame(data, METADATA_COLUMNS)
    _require(df, ["Game", "Genre"], "metadata")
    if "PercentOffline" not in df.columns:
        df["PercentOffline"] = float("nan")
    df = df[METADATA_COLUMNS].reset_index(drop=True).copy()
    df["Game"] = _as_object(df["Game"])
    df["Genre"] = _as_object(df["Genre"])
    df["PercentOffline"] = pd.to_numeric(df["PercentOffline"], errors="coerce").astype("float64")
    return df

class DataStore:
    """Validated, normalised copies of the two input tables for one run."""

    def __init__(self, records: Rows, metadata: Rows):
        self.records = normalize_records(records)
        self.metadata = normalize_metadata(metadata)
        log.info(f"Inputs normalised. Records={len(self.records)} Metadata={len(self.metadata)}")

    @property
    def empty(self) -> bool:
        return self.records.empty or self.metadata.empty

    def connect(self) -> duckdb.DuckDBPyConnection:
        con = duckdb.connect()
        con.register("records", self.records)
        # _row keeps the metadata input order for first-match-wins
        con.register("metadata", self.metadata.assign(_row=range(len(self.metadata))))
        return con
