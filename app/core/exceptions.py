class MindMapError(Exception):
    """Base class for failures surfaced to the client as a 400 envelope"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(MindMapError):
    pass


class AccessDenied(MindMapError):
    pass


class LimitExceeded(MindMapError):
    pass


class InvalidInput(MindMapError):
    pass


class UnsupportedFormat(MindMapError):
    pass
