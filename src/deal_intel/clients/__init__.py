"""
External service clients for the Deal Intel pipeline.

Provides PipedriveClient (CRM), GmailClient (mailbox) and OpenAIClient
(prioritization model).
"""

from .gmail_client import GmailClient
from .openai_client import OpenAIClient
from .pipedrive_client import PipedriveClient

__all__ = ['PipedriveClient', 'GmailClient', 'OpenAIClient']
