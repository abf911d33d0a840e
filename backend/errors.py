"""
Domain exceptions.

Services raise these (alongside plain `ValueError` / `PermissionError`)
and `main.py` maps them to HTTP status codes. Repositories only raise
`WriteConflict`.
"""


class RecordNotFound(LookupError):
    """A record addressed by id does not exist."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(f"{record_type} not found: {record_id}")
        self.record_type = record_type
        self.record_id = record_id


class WriteConflict(Exception):
    """An optimistic save saw a newer server version of the record."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(f"{record_type} changed on server: {record_id}")
        self.record_type = record_type
        self.record_id = record_id


class PaywallRequired(PermissionError):
    """A free user has used up a quota that subscribers don't have."""


class BroadcastUnavailable(Exception):
    """Broadcast features need a location the server does not have yet."""
