"""Exception types raised by the ingestion pipeline and mapped to HTTP by the routes."""

class TeamfitError(Exception):
    """Base class for application errors."""

class AuthorizationError(TeamfitError):
    """No webhook secret, cron secret or session user validated."""

class ConnectionNotFound(TeamfitError):
    """The session user has no Strava connection."""

class StravaAPIError(TeamfitError):
    """Strava answered with a non-success status, or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

class TokenRefreshError(StravaAPIError):
    """Strava rejected the refresh token exchange."""

class ActivityFetchError(StravaAPIError):
    """Listing athlete activities failed part-way through pagination."""
