"""
Exceptions raised by the MAPI client and the classifier that maps a MonetDB
server error message onto one of them.

A MonetDB error response starts with the ``!`` prefix followed by a six
character status code (five characters plus a terminating ``!``) and a human
readable message, e.g. ``!42S02!SELECT: no such table 'foo'``.
"""

import enum
import types

from typing import Optional, Tuple


MSG_ERROR = "!"

ERROR_CODE_LENGTH = 6


class ErrorKind(enum.Enum):
    DatabaseError = "DatabaseError"
    IntegrityError = "IntegrityError"
    NotSupportedError = "NotSupportedError"
    OperationalError = "OperationalError"
    ProgrammingError = "ProgrammingError"


# Known server status codes. Anything not listed here is reported as an
# OperationalError.
ERROR_CODES = types.MappingProxyType(
    {
        "42S02!": ErrorKind.OperationalError,  # no such table
        "M0M29!": ErrorKind.IntegrityError,  # INSERT INTO: UNIQUE constraint violated
        "2D000!": ErrorKind.IntegrityError,  # COMMIT: failed
        "40000!": ErrorKind.IntegrityError,  # DROP TABLE: FOREIGN KEY constraint violated
    }
)


class Error(Exception):
    """ Base class of all exceptions raised by this library """


class DecodeError(Error):
    """ A received block could not be decoded as UTF-8 text """


class ProtocolError(Error):
    """ The byte stream violated the MAPI block framing rules """


class MapiConnectionError(Error, ConnectionError):
    """ The transport could not be established or was lost """


class DatabaseError(Error):
    """ An error reported by the database server.

    :param message: The human readable message text.

    :param code: The six character status code that prefixed the message or
      None when the message did not start with a recognised code.
    """

    kind = ErrorKind.DatabaseError

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class IntegrityError(DatabaseError):
    kind = ErrorKind.IntegrityError


class NotSupportedError(DatabaseError):
    kind = ErrorKind.NotSupportedError


class OperationalError(DatabaseError):
    kind = ErrorKind.OperationalError


class ProgrammingError(DatabaseError):
    kind = ErrorKind.ProgrammingError


EXCEPTIONS = types.MappingProxyType(
    {
        ErrorKind.DatabaseError: DatabaseError,
        ErrorKind.IntegrityError: IntegrityError,
        ErrorKind.NotSupportedError: NotSupportedError,
        ErrorKind.OperationalError: OperationalError,
        ErrorKind.ProgrammingError: ProgrammingError,
    }
)


def classify(text: str) -> Tuple[ErrorKind, str]:
    """ Classify a server error message by its leading status code.

    :param text: The error message, without the leading ``!`` response
      prefix.

    :returns: A 2-tuple of the error kind and the message text. When the
      first six characters are a known status code the message text is the
      remainder that follows the code. Otherwise the kind is OperationalError
      and the message text is the entire input.
    """
    if len(text) >= ERROR_CODE_LENGTH:
        kind = ERROR_CODES.get(text[:ERROR_CODE_LENGTH])
        if kind is not None:
            return kind, text[ERROR_CODE_LENGTH:]
    return ErrorKind.OperationalError, text


def exception_for(text: str) -> DatabaseError:
    """ Return an exception instance describing a server error message """
    kind, message = classify(text)
    code = text[:ERROR_CODE_LENGTH]
    return EXCEPTIONS[kind](message, code=code if code in ERROR_CODES else None)


def raise_for_error(response: str) -> str:
    """ Raise the classified exception if the response is an error message.

    Responses that do not start with the ``!`` error prefix are returned
    unchanged.
    """
    if response.startswith(MSG_ERROR):
        raise exception_for(response[len(MSG_ERROR) :])
    return response
