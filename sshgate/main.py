import argparse
import asyncio
import sys
from pathlib import Path

from sshgate.core.config import settings
from sshgate.core.logger import logger
from sshgate.core.exceptions import BaseAppException, HostKeyException, ListenerBindException
from sshgate.core.lifespan import lifespan
from sshgate.domains.keys.repositories.public_key_repository import PublicKeyRepository


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=settings.APP_NAME,
        description="SSH front-end for git hosting",
    )
    parser.add_argument(
        "-p", "--port", type=int, default=settings.SSH_PORT,
        help=f"port to listen on (default: {settings.SSH_PORT})",
    )
    subparsers = parser.add_subparsers(dest="command")

    add_key = subparsers.add_parser("add-key", help="register a public key")
    add_key.add_argument("owner_id", type=int)
    add_key.add_argument("name")
    add_key.add_argument("file", type=Path, help="authorized_keys style public key file")

    list_keys = subparsers.add_parser("list-keys", help="list registered public keys")
    list_keys.add_argument("--owner", type=int, default=None)

    delete_key = subparsers.add_parser("delete-key", help="remove a public key")
    delete_key.add_argument("key_id", type=int)

    return parser


async def serve(port: int) -> None:
    async with lifespan(port) as listener:
        await listener.serve_forever()


async def run_key_command(args: argparse.Namespace) -> int:
    repository = PublicKeyRepository(settings.KEY_DB_PATH)
    await repository.initialize_db()

    if args.command == "add-key":
        key = await repository.add_key(args.owner_id, args.name, args.file.read_text())
        print(f"key-{key.id}\t{key.fingerprint}")
        return 0

    if args.command == "list-keys":
        for key in await repository.list_keys(args.owner):
            print(f"key-{key.id}\t{key.owner_id}\t{key.name}\t{key.fingerprint}")
        return 0

    if await repository.delete_key(args.key_id):
        return 0
    print(f"key-{args.key_id} not found", file=sys.stderr)
    return 1


def main(argv=None) -> int:
    args = create_parser().parse_args(argv)

    if args.command is not None:
        try:
            return asyncio.run(run_key_command(args))
        except (BaseAppException, OSError) as e:
            print(str(e), file=sys.stderr)
            return 1

    try:
        asyncio.run(serve(args.port))
    except (ListenerBindException, HostKeyException) as e:
        logger.critical(f"[SSH] Failed to start: {e.to_log_dict()}")
        return 1
    except BaseAppException as e:
        logger.critical(f"Startup failed: {e.to_log_dict()}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
