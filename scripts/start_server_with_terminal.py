"""Launch the scope server and automatically attach the interactive terminal."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from scope_server.config import load_config  # type: ignore[import]
from scope_server.server import ScopeServerFacade  # type: ignore[import]
from scope_server.terminal import main as terminal_main  # type: ignore[import]


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(message)s")
    config_path = PROJECT_ROOT / "config.yaml"
    if not config_path.exists():
        config_path = PROJECT_ROOT / "config.example.yaml"
    config = load_config(config_path)
    # Keep the listener local and let the OS pick a port
    config.server.host = "127.0.0.1"
    config.server.port = 0
    config.status.enabled = False
    facade = ScopeServerFacade(config, config_path)
    ctx = facade.start()
    worker = threading.Thread(target=ctx.server.loop, daemon=True)
    worker.start()

    try:
        print(f"Server running on {ctx.server.host}:{ctx.server.port}")
        print("Starting terminal; press Ctrl+C to exit.")
        return terminal_main(["--host", ctx.server.host, "--port", str(ctx.server.port)])
    finally:
        facade.stop()
        worker.join(timeout=1.0)


if __name__ == "__main__":
    sys.exit(main())
