from typing import Literal, Optional

from pydantic import BaseModel


class DifferenceSource(BaseModel):
    label: str
    url: str


class DifferenceItem(BaseModel):
    """One Hollow Knight vs Silksong row backed by a public source."""

    dimension: str
    hk: str
    ss: str
    status: Literal["confirmed", "hinted", "speculated"]
    source: DifferenceSource
    group: Optional[str] = None


class UnconfirmedItem(BaseModel):
    expectation: str
    rationale: str
    status: Literal["unconfirmed"] = "unconfirmed"
    note: Optional[str] = None
    group: Optional[str] = None
