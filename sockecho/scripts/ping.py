"Send a message to an echo listener and check that it comes back unchanged"
import argparse
import sys
import trio
import typing as t
from sockecho.address import parse_address
from sockecho.client import echo_once

async def main(argv: t.Optional[t.List[str]]=None) -> int:
    parser = argparse.ArgumentParser(description='Check that an echo listener echoes')
    parser.add_argument('address', help="a path containing a slash for a Unix socket, or host:port for TCP")
    parser.add_argument('message', nargs='?', default='ping')
    args = parser.parse_args(argv)
    try:
        address = parse_address(args.address)
    except ValueError as e:
        parser.error(str(e))
    message = args.message.encode()
    try:
        reply = await echo_once(address, message)
    except (OSError, trio.BrokenResourceError) as e:
        print("connection failed:", e, file=sys.stderr)
        return 2
    print(reply.decode(errors='replace'))
    if reply != message:
        print("reply differs from what was sent", file=sys.stderr)
        return 1
    return 0

def run() -> None:
    sys.exit(trio.run(main))

if __name__ == "__main__":
    run()
