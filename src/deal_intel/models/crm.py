"""
CRM snapshot models.

Read-only views of Pipedrive records for the duration of one pipeline run.
Field names follow the Pipedrive v2 API so client responses validate
directly; unknown fields are ignored.
"""

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Deal(BaseModel):
    """An open Pipedrive deal."""

    model_config = ConfigDict(extra='ignore')

    id: int = Field(..., description='Pipedrive deal ID')
    title: str = Field(default='', description='Deal title')
    value: float | None = Field(default=None, description='Monetary value')
    currency: str | None = Field(default=None, description='ISO currency code')
    stage_id: int | None = Field(default=None, description='Pipeline stage reference')
    update_time: datetime | None = Field(
        default=None, description='Last update timestamp (UTC)'
    )

    def staleness_days(self, now: datetime | None = None) -> int | None:
        """
        Whole days elapsed since the last update.

        Returns None when the deal has no update timestamp. Naive timestamps
        are treated as UTC.
        """
        if self.update_time is None:
            return None
        now = now or datetime.now(tz=timezone.utc)
        updated = self.update_time
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return math.floor((now - updated).total_seconds() / 86_400)


class PersonEmail(BaseModel):
    """One email address entry on a Pipedrive person."""

    model_config = ConfigDict(extra='ignore')

    value: str | None = None
    primary: bool = False
    label: str | None = None


class CRMPerson(BaseModel):
    """A contact person as returned by the CRM, before email resolution."""

    model_config = ConfigDict(extra='ignore')

    id: int
    name: str | None = None
    emails: list[PersonEmail] = Field(default_factory=list)


class Contact(BaseModel):
    """A deal contact resolved to at most one email address."""

    id: int
    name: str
    email: str | None = None


class Activity(BaseModel):
    """A CRM activity (call, meeting, task) attached to a deal."""

    model_config = ConfigDict(extra='ignore')

    id: int | None = None
    type: str | None = None
    subject: str | None = None
    due_date: str | None = None
