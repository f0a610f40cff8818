"""
Dumpspace API Layer

Provides:
- DumpspaceClient — game list lookups and offset blob downloads
"""

from .client import DumpspaceClient, GameList, Game, Uploader, BASE_URL

__all__ = ['DumpspaceClient', 'GameList', 'Game', 'Uploader', 'BASE_URL']
