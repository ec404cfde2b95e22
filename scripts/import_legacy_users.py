import asyncio, json, sys

from hivewatch.config import load_settings
from hivewatch.db import ConnectionProvider
from hivewatch.legacy import import_users


async def run(path: str) -> None:
    with open(path, encoding="utf-8") as fh:
        documents = json.load(fh)

    provider = ConnectionProvider(load_settings())
    factory = await provider.get_or_connect()
    try:
        async with factory() as session:
            added = await import_users(session, documents)
    finally:
        await provider.dispose()
    print(f"imported {added} hive(s) from {len(documents)} user document(s)")


def main() -> None:
    if len(sys.argv) != 2:
        sys.exit("usage: import_legacy_users.py users.json")
    asyncio.run(run(sys.argv[1]))


if __name__ == "__main__":
    main()
