__version__ = "0.1.0"

from .client import Connection, connect
from .codec import BlockCodec, MAX_PAYLOAD
from .config import Config
from .errors import (
    DatabaseError,
    DecodeError,
    Error,
    ErrorKind,
    IntegrityError,
    MapiConnectionError,
    NotSupportedError,
    OperationalError,
    ProgrammingError,
    ProtocolError,
    classify,
    raise_for_error,
)
