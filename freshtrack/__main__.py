from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import load_config


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stdout,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the FreshTrack detection API.")
    parser.add_argument("--config", type=Path, default=None, help="JSON service config (default: $FRESHTRACK_CONFIG)")
    parser.add_argument("--host", default=None, help="Override bind host.")
    parser.add_argument("--port", type=int, default=None, help="Override bind port.")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.log_level)
    logger = logging.getLogger("freshtrack")

    import uvicorn  # type: ignore

    from .service import create_app

    app = create_app(config)
    host = args.host or config.host
    port = args.port or config.port
    logger.info("FreshTrack backend starting on %s:%d (model=%s)", host, port, config.model_path)
    # uvicorn handles SIGTERM/SIGINT with a graceful shutdown.
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
