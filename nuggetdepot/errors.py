class NuggetDepotError(Exception):
    """Base class for errors raised by the community services."""


class UploadRejected(NuggetDepotError):
    """An upload failed validation before anything was written.

    ``flag`` is the query flag the page redirects with so the next render can
    show an inline message.
    """

    def __init__(self, flag: str, message: str = ""):
        super().__init__(message or flag)
        self.flag = flag


class InvalidInput(NuggetDepotError):
    def __init__(self, flag: str, message: str = ""):
        super().__init__(message or flag)
        self.flag = flag
