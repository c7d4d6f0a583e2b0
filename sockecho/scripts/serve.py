"Run an echo listener until SIGINT or SIGTERM"
import argparse
import logging
import signal
import sys
import trio
import typing as t
from sockecho.config import ListenerConfig
from sockecho.exceptions import BindError
from sockecho.listener import Listener

logger = logging.getLogger(__name__)

def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Echo back everything received on a socket')
    parser.add_argument('address', help="a path containing a slash for a Unix socket, or host:port for TCP")
    parser.add_argument('--backlog', type=int, default=128)
    parser.add_argument('--max-sessions', type=int, default=64)
    parser.add_argument('--admission-timeout', type=float, default=0.0,
                        help="seconds to wait for a free session slot before refusing a connection")
    parser.add_argument('--grace-period', type=float, default=5.0,
                        help="seconds to let sessions finish on shutdown before closing them")
    parser.add_argument('--buffer-size', type=int, default=4096)
    parser.add_argument('--no-interrupt-idle', action='store_true',
                        help="on shutdown, let sessions run until their peer closes or the grace period ends")
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser

def make_config(parser: argparse.ArgumentParser, args: argparse.Namespace) -> ListenerConfig:
    try:
        return ListenerConfig.make(
            args.address,
            backlog=args.backlog,
            max_sessions=args.max_sessions,
            admission_timeout=args.admission_timeout,
            grace_period=args.grace_period,
            buffer_size=args.buffer_size,
            interrupt_idle_on_stop=not args.no_interrupt_idle,
        )
    except (TypeError, ValueError) as e:
        parser.error(str(e))

async def main(argv: t.Optional[t.List[str]]=None) -> int:
    parser = make_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    listener = Listener(make_config(parser, args))
    try:
        await listener.start()
    except BindError as e:
        logger.error("%s", e)
        return 1
    async with trio.open_nursery() as nursery:
        @nursery.start_soon
        async def stop_on_signal() -> None:
            with trio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
                async for signum in signals:
                    logger.info("got %s", signal.Signals(signum).name)
                    listener.stop()
        await listener.serve()
        nursery.cancel_scope.cancel()
    return 0

def run() -> None:
    sys.exit(trio.run(main))

if __name__ == "__main__":
    run()
