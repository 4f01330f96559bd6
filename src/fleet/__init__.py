"""
Fleet package - bot worker registry
"""

from .bot_fleet import BotFleet, IWorker

__all__ = ['BotFleet', 'IWorker']
