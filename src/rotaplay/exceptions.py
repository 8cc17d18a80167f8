"""rotaplay exceptions for error handling."""


class RotaplayError(Exception):
    """Base exception for rotaplay operations."""

    pass


class PlaylistNotFoundError(RotaplayError):
    """Raised when a playlist id does not exist."""

    def __init__(self, playlist_id: int, message: str = None):
        self.playlist_id = playlist_id
        super().__init__(message or f"Playlist #{playlist_id} not found")


class ConfigError(RotaplayError):
    """Raised when configuration cannot be used at all."""

    pass
