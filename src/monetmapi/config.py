"""
Connection settings for a MAPI client.
"""

import dataclasses
import os

from typing import Optional, Tuple, Union
from yarl import URL


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 50000
DEFAULT_USER = "monetdb"
DEFAULT_PASSWORD = "monetdb"
DEFAULT_DATABASE = "monetdb"
DEFAULT_LANGUAGE = "english"


@dataclasses.dataclass
class Config:
    """
    The settings used to reach a MonetDB server.

    Only the endpoint fields (``socket``, or ``hostname`` and ``port``) are
    used to open the connection. The credentials, database and language are
    carried for the login exchange that runs once the connection is up.

    :param socket: An optional path to a Unix domain socket. When set it is
      used instead of hostname and port.

    :param hostname: The server host. Default value is 'localhost'.

    :param port: The server port. Default value is 50000.

    :param username: Login credentials username. Default value is 'monetdb'.

    :param password: Login credentials password. Default value is 'monetdb'.

    :param database: The database to use. Default value is 'monetdb'.

    :param language: The session language. Default value is 'english'.
    """

    socket: Optional[str] = None
    hostname: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USER
    password: str = dataclasses.field(default=DEFAULT_PASSWORD, repr=False)
    database: str = DEFAULT_DATABASE
    language: str = DEFAULT_LANGUAGE

    @classmethod
    def from_env(
        cls,
        socket: str = None,
        hostname: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        database: str = None,
        language: str = None,
    ) -> "Config":
        """
        Create a Config from parameters.

        If no value is passed to an argument then the environment is
        inspected for a setting prefixed with ``MONETDB_`` and then the
        default value is used.
        """
        return cls(
            socket=socket
            if socket is not None
            else os.getenv("MONETDB_SOCKET") or None,
            hostname=hostname
            if hostname is not None
            else os.getenv("MONETDB_HOST", DEFAULT_HOST),
            port=port
            if port is not None
            else int(os.getenv("MONETDB_PORT", str(DEFAULT_PORT))),
            username=username
            if username is not None
            else os.getenv("MONETDB_USER", DEFAULT_USER),
            password=password
            if password is not None
            else os.getenv("MONETDB_PASSWORD", DEFAULT_PASSWORD),
            database=database
            if database is not None
            else os.getenv("MONETDB_DATABASE", DEFAULT_DATABASE),
            language=language
            if language is not None
            else os.getenv("MONETDB_LANGUAGE", DEFAULT_LANGUAGE),
        )

    @property
    def address(self) -> Union[str, Tuple[str, int]]:
        """ Return the endpoint to connect to.

        This is the socket path for a Unix domain socket, otherwise a
        (hostname, port) 2-tuple.
        """
        if self.socket:
            return self.socket
        return (self.hostname, self.port)

    @property
    def url(self) -> str:
        """ Return a URL describing the connection target.

        The password is never included. The URL is meant for log messages.
        """
        if self.socket:
            url = URL.build(scheme="mapi", path=self.socket).with_query(
                database=self.database
            )
        else:
            url = URL.build(
                scheme="mapi",
                user=self.username,
                host=self.hostname,
                port=self.port,
                path=f"/{self.database}",
            )
        return str(url)
