"""Run the room server: python -m cowbull.server"""

import uvicorn

from cowbull.server.settings import GameServerSettings


def main() -> None:  # pragma: no cover
    settings = GameServerSettings()
    uvicorn.run(
        "cowbull.server.app:get_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
