import uvicorn

from macrelay.config import RelayConfig


def main() -> None:
    config = RelayConfig.from_env()
    uvicorn.run(
        "macrelay.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level
    )


if __name__ == "__main__":
    main()
