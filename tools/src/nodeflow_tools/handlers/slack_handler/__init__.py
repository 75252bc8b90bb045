"""
Slack Handler - Post messages to a Slack channel.
"""

from .slack_handler import register_handlers

__all__ = ["register_handlers"]
