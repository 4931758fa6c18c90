"""
Error taxonomy shared by the stores, the services and the HTTP layer.

- NotFound: no record matches the requested id
- StorageFault: a bytes or metadata read/write failed underneath
- ValidationFault: an upload was rejected before anything was written
"""


class PeoFilesError(Exception):
    """Base class for all domain errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PeoFilesError):
    pass


class StorageFault(PeoFilesError):
    pass


class ValidationFault(PeoFilesError):
    pass
