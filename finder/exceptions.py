# finder/exceptions.py


class TrackerError(Exception):
    """Base class for book tracker errors"""


class DecodeError(TrackerError):
    """A stored document could not be decoded into a record"""

    def __init__(self, kind, doc_id, reason):
        self.kind = kind
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"Malformed {kind} document {doc_id!r}: {reason}")


class NotificationNotFound(TrackerError):
    """No notification with this id belongs to the caller"""


class BookNotFound(TrackerError):
    """No book with this id belongs to the caller"""


class MailerError(TrackerError):
    """Mail transport is not configured or the SMTP exchange failed"""
