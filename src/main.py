"""
Daikin Exporter - Main Entry Point
"""

import asyncio
import signal
import sys
import logging
import os

from services.exporter_server import ExporterServer

logger = logging.getLogger(__name__)

async def main(config_path=None):
    """Main entry point"""

    server = None
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_requested.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            pass  # not available on Windows event loops

    try:
        # Config path from argv, then environment, else defaults
        config_path = config_path or os.environ.get('CONFIG_FILE')
        logger.info(f"Using configuration file: {config_path or '(defaults)'}")
        server = ExporterServer(config_path=config_path)

        serve_task = asyncio.create_task(server.start())
        stop_task = asyncio.create_task(stop_requested.wait())
        done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

        stop_task.cancel()
        if serve_task in done:
            serve_task.result()
        else:
            await server.stop()
            await asyncio.gather(serve_task, return_exceptions=True)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Exporter failed: {e}")
        return 1
    finally:
        if server:
            await server.stop()

    return 0

def run():
    """Console script entry point"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        exit_code = asyncio.run(main(config_path))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nExporter stopped by user")
        sys.exit(0)

if __name__ == "__main__":
    run()
