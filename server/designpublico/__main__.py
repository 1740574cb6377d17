"""Run the server: ``python -m designpublico``."""

from __future__ import annotations

import uvicorn

from designpublico.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "designpublico.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.env == "dev",
    )


if __name__ == "__main__":
    main()
