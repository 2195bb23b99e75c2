"""Room state synchronization and win-claim verification.

Transport-agnostic protocol code shared by host and player clients. Nothing
here imports Flask: the server package wires these pieces to its database and
Socket.IO relay, while clients run them over any channel transport.
"""

from .animation import DrawAnimation
from .cards import bingo_letter, generate_card_numbers
from .channel import ChannelSession
from .errors import MessageError, SyncError
from .host import HostSession
from .local_store import JsonFileStore, KeyValueStore, MemoryStore
from .persistence import CallRecord, MemoryPersistence, RoomPersistence
from .player import PlayerSession
from .presence import PresenceTracker
from .state import RoomState, WinnerClaim
from .transports import LocalHub, SocketIOTransport
from .verifier import VerificationResult, verify

__all__ = [
    'CallRecord',
    'ChannelSession',
    'DrawAnimation',
    'HostSession',
    'JsonFileStore',
    'KeyValueStore',
    'LocalHub',
    'MemoryPersistence',
    'MemoryStore',
    'MessageError',
    'PlayerSession',
    'PresenceTracker',
    'RoomPersistence',
    'RoomState',
    'SocketIOTransport',
    'SyncError',
    'VerificationResult',
    'WinnerClaim',
    'bingo_letter',
    'generate_card_numbers',
    'verify',
]
