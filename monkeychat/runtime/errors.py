"""
Matchmaking errors.

Races against teardown (a room or queue entry that is already gone) are not
errors: those operations return False. These exceptions cover malformed client
input and broken internal invariants.
"""


class MatchmakingError(Exception):
    """Base class for errors raised by the session/matching core."""


class ProtocolError(MatchmakingError):
    """Inbound event is malformed or not allowed in the connection's state."""

    def __init__(self, connection_id: str, detail: str):
        self.connection_id = connection_id
        self.detail = detail
        super().__init__(f"connection {connection_id}: {detail}")


class RoomConsistencyError(MatchmakingError):
    """A room operation would break the one-active-room-per-connection rule."""
