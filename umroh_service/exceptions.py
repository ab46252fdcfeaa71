class FatalFetchError(Exception):
    """The primary entity list could not be read; the whole run is aborted."""


class NotificationWriteError(Exception):
    """The batch insert of reminder notifications failed."""
