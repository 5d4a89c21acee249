"""
A line oriented prompt that sends each line typed on stdin to a MonetDB
server as a single request and prints the response.

The login exchange is not performed, so this is only useful against a
server (or a test double) that accepts requests straight away.
"""

import asyncio
import logging
import sys

from monetmapi import Config, Error, connect


async def prompt(config: Config, check_error: bool) -> None:
    loop = asyncio.get_event_loop()
    async with await connect(config) as conn:
        while True:
            sys.stdout.write("> ")
            sys.stdout.flush()
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line or line in ("\\q\n", "quit();\n"):
                break
            try:
                response = await conn.call(line, check_error=check_error)
            except Error as exc:
                print(f"{type(exc).__name__}: {exc}")
                if not conn.connected:
                    break
                continue
            print(response, end="" if response.endswith("\n") else "\n")


if __name__ == "__main__":

    import argparse

    parser = argparse.ArgumentParser(description="MAPI Prompt Example")
    parser.add_argument(
        "--host",
        metavar="<host>",
        type=str,
        default=None,
        help="The host the server is running on",
    )
    parser.add_argument(
        "--port",
        metavar="<port>",
        type=int,
        default=None,
        help="The port that the server is listening on",
    )
    parser.add_argument(
        "--socket",
        metavar="<path>",
        type=str,
        default=None,
        help="A unix domain socket to connect to instead of host and port",
    )
    parser.add_argument(
        "--check-error",
        action="store_true",
        help="Report server error responses as exceptions",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "error"],
        default="error",
        help="Logging level. Default is 'error'.",
    )

    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s.%(msecs)03.0f [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, args.log_level.upper()),
    )

    config = Config.from_env(socket=args.socket, hostname=args.host, port=args.port)

    try:
        asyncio.run(prompt(config, args.check_error))
    except KeyboardInterrupt:
        pass
    except Error as exc:
        print(f"{type(exc).__name__}: {exc}")
        sys.exit(1)
