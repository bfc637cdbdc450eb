"""Exception hierarchy for the APL backend.

Lower layers raise these; the endpoint layer maps them to HTTP status codes
and batch jobs record them per item.
"""


class AplError(Exception):
    """Base class for all APL errors."""

    status_code = 500


class DocumentNotFound(AplError):
    """A required document does not exist in the store."""

    status_code = 404

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f'{collection}/{doc_id} not found')
        self.collection = collection
        self.doc_id = doc_id


class ConcurrencyConflict(AplError):
    """A conditional write lost against a concurrent writer."""

    status_code = 409


class StoreError(AplError):
    """The document store could not be read or written."""

    status_code = 502


class SheetError(AplError):
    """The performance spreadsheet could not be fetched or parsed."""

    status_code = 502


class CricketApiError(AplError):
    """The cricket statistics API returned an error."""

    status_code = 502


class TransferError(AplError):
    """A team save or transfer violates the tournament rules."""

    status_code = 400


class LeagueError(AplError):
    """A league operation is not allowed or refers to a missing league."""

    status_code = 400


class PermissionDenied(AplError):
    """The acting user may not run an admin operation."""

    status_code = 403
