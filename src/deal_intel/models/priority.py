"""
LLM structured output models for deal prioritization.

DealPriorityAnalysis is the validation target for the prioritization tool
call. Field names and enum values are shared with the tool schema in
deal_intel.prompts.prioritize_deals and with the presenter, so renaming
anything here is a breaking change for both.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

MAX_HISTORY_ENTRIES = 5


class DealHealth(str, Enum):
    """Overall health classification of a deal."""

    HOT = 'hot'
    WARM = 'warm'
    COLD = 'cold'
    AT_RISK = 'at_risk'


class Urgency(str, Enum):
    """How soon the deal needs attention."""

    IMMEDIATE = 'immediate'
    THIS_WEEK = 'this_week'
    NEXT_WEEK = 'next_week'
    NO_RUSH = 'no_rush'


class DealHistoryEntry(BaseModel):
    """One recent action, activity or email pulled from the deal context."""

    date: str = Field(..., description="Short date like 'Feb 5' or 'Jan 30'")
    summary: str = Field(..., description='One short sentence summarizing the action')


class DealPriority(BaseModel):
    """Prioritization of a single deal."""

    deal_id: int = Field(..., description='Pipedrive deal ID from the context header')
    deal_title: str = Field(..., description='Deal title')
    priority_rank: int = Field(..., description='1 = most urgent; out-of-range ranks are renumbered')
    deal_health: DealHealth = Field(..., description='hot, warm, cold or at_risk')
    urgency: Urgency = Field(..., description='immediate, this_week, next_week or no_rush')
    recommended_actions: list[str] = Field(
        ..., description='Concise bullet points for next actions'
    )
    reasoning: list[str] = Field(
        ..., description='Concise bullet points explaining the rank'
    )
    key_signals: list[str] = Field(
        ..., description='Short signal phrases from emails/activities'
    )
    deal_history: list[DealHistoryEntry] = Field(
        ..., description='Last 5 actions/activities/emails, latest first'
    )

    @field_validator('deal_history')
    @classmethod
    def _cap_history(cls, entries: list[DealHistoryEntry]) -> list[DealHistoryEntry]:
        return entries[:MAX_HISTORY_ENTRIES]


class DealPriorityAnalysis(BaseModel):
    """Ranked prioritization of every analyzed deal."""

    deals: list[DealPriority] = Field(
        default_factory=list, description='One entry per deal'
    )

    def deal_ids(self) -> list[int]:
        return [d.deal_id for d in self.deals]
