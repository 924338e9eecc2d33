"""Output records written as JSON artifacts."""

from __future__ import annotations

import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field


class LastUpdate(BaseModel):
    """Instant of the data revision most recently ingested."""

    datetime: dt.datetime = Field(description="Local-offset timestamp of the revision")


class SummaryContent(BaseModel):
    date: dt.datetime = Field(description="Calendar date as UTC midnight")
    sum: int = Field(ge=0, description="Count for that day")


class Summary(BaseModel):
    """A daily series, in reverse worksheet row order."""

    data: list[SummaryContent] = Field(default_factory=list)
    last_update: dt.datetime


class Attribute(str, Enum):
    """Node tags of the status tree."""

    INSPECTIONS = "Inspections"
    PATIENTS = "Patients"
    HOSPITALIZATIONS = "Hospitalizations"
    SEVERELY_PATIENTS = "SeverelyPatients"
    OTHER = "Other"
    ACCOMMODATIONS = "Accommodations"
    HOME = "Home"
    DEAD = "Dead"
    LEAVE = "Leave"
    COORDINATING = "Coordinating"


class Status(BaseModel):
    """One node of the case-status breakdown tree."""

    attr: Attribute
    value: int = Field(ge=0)
    children: list[Status] | None = None
    last_update: dt.datetime | None = None

    def child(self, attr: Attribute) -> Status:
        """Return the direct child tagged *attr*."""
        for node in self.children or []:
            if node.attr is attr:
                return node
        raise KeyError(attr)


class NewsItem(BaseModel):
    date: dt.date
    text: str
    url: str


class NewsItems(BaseModel):
    news_items: list[NewsItem] = Field(default_factory=list)
