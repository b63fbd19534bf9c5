class RelayError(Exception):
    """Base class for relay failures."""


class DuplicateIdError(RelayError):
    def __init__(self, connection_id: str):
        super().__init__(f"connection id already registered: {connection_id}")
        self.connection_id = connection_id


class UnknownConnectionError(RelayError):
    def __init__(self, connection_id: str):
        super().__init__(f"connection not registered: {connection_id}")
        self.connection_id = connection_id


class IdentityAlreadySetError(RelayError):
    def __init__(self, connection_id: str):
        super().__init__(f"identity already bound for connection {connection_id}")
        self.connection_id = connection_id


class FrameError(RelayError):
    """Raised when an inbound frame cannot be decoded."""
