"""
Data models for the Deal Intel pipeline.

Provides CRM snapshot models (Deal, Contact, Activity), mailbox metadata
(CommunicationRecord), and the LLM structured output models for deal
prioritization.
"""

from .communication import CommunicationRecord
from .crm import Activity, Contact, CRMPerson, Deal, PersonEmail
from .priority import (
    MAX_HISTORY_ENTRIES,
    DealHealth,
    DealHistoryEntry,
    DealPriority,
    DealPriorityAnalysis,
    Urgency,
)

__all__ = [
    # CRM snapshot models
    'Deal',
    'Contact',
    'CRMPerson',
    'PersonEmail',
    'Activity',
    # Mailbox
    'CommunicationRecord',
    # LLM structured output models
    'DealHealth',
    'Urgency',
    'DealHistoryEntry',
    'DealPriority',
    'DealPriorityAnalysis',
    'MAX_HISTORY_ENTRIES',
]
