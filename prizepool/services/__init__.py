"""
Services package for the prize pool settlement pipeline.

Ranking, scanning, winner registration, claims and credit migration.
"""

from .base import BaseService

__all__ = ['BaseService']
