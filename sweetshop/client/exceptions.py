"""
Errors raised by storefront data sources
"""


class ApiError(Exception):
    """The shop answered with an error; message is what the server said"""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self):
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class BackendUnavailable(Exception):
    """The shop could not be reached at all"""
