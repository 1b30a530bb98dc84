"""
graphreel process entrypoint.

``graphreel --profile preview --port 9000`` loads the named profile, sets up
logging and serves the control API until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from .api.server import create_app
from .config import EngineConfig, load_config
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)


def build_server(config: EngineConfig, host: str = "127.0.0.1", port: int = 8080):
    """Return a ready uvicorn server wrapping a fresh resolver app."""

    import uvicorn

    app = create_app(config=config)
    return uvicorn.Server(
        config=uvicorn.Config(
            app=app,
            host=host,
            port=port,
            # keep the handlers installed by configure_logging
            log_config=None,
            reload=False,
        )
    )


async def serve(config: EngineConfig, host: str = "127.0.0.1", port: int = 8080) -> None:
    server = build_server(config, host=host, port=port)
    LOG.info("Serving profile '%s' on http://%s:%d", config.profile, host, port)
    try:
        # uvicorn installs its own SIGINT/SIGTERM handlers and sets should_exit
        await server.serve()
    finally:
        server.config.app.state.resolver.close()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="graphreel timeline resolver server")
    parser.add_argument("--profile", default="default", help="configuration profile from profiles.yaml")
    parser.add_argument("--host", default="127.0.0.1", help="bind host for the API server")
    parser.add_argument("--port", type=int, default=8080, help="bind port for the API server")
    parser.add_argument("--log-level", default="info", help="log level for graphreel loggers")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    config = load_config(args.profile)
    LOG.info("Loaded profile '%s' (%.2f fps, %d frames)", config.profile, config.fps, config.duration_frames)

    try:
        asyncio.run(serve(config, host=args.host, port=args.port))
    except KeyboardInterrupt:
        LOG.info("Server interrupted by user.")


if __name__ == "__main__":
    run()
