"""Exceptions raised by the room synchronization core."""


class RoomSyncError(Exception):
    """Base class for every error raised by this service."""


class MalformedIdentifier(RoomSyncError):
    """Room identifier is not exactly six ASCII digits."""


class RoomNotFound(RoomSyncError):
    """No open room matches the identifier."""


class MalformedMessage(RoomSyncError):
    """Frame is not valid JSON or is not a well-formed text_update."""


class TransportFailure(RoomSyncError):
    """The connection can no longer carry frames."""


class CreationFailure(RoomSyncError):
    """Room creation returned no usable identifier."""


class RoomCapacityExceeded(RoomSyncError):
    """No free identifier could be drawn within the attempt budget."""
