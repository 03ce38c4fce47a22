from datetime import date
from pydantic import BaseModel
from typing import Optional, Union

class SourceRecord(BaseModel):
    Date: Optional[Union[date, str]] = None
    Game: str
    Earnings: Optional[float] = None
    Players: Optional[int] = None
    Tournaments: Optional[int] = None

class GameMetadata(BaseModel):
    Game: str
    Genre: Optional[str] = None
    PercentOffline: Optional[float] = None  # 0-100

class GenreYearRanking(BaseModel):
    Year: int
    Genre: str
    RankInYear: int
    TopGame: str
    TopGameEarnings: float
    TotalYearlyEarnings: float
    TotalPlayers: int
    TotalTournaments: int
    GameCount: int
    AvgEarningsPerPlayer: float
    AvgTournamentSize: float
    EarningsPerTournament: float
    AvgOfflinePercentage: Optional[float] = None  # null when no title carries a value
