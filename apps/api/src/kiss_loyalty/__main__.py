import uvicorn

from kiss_loyalty.core.settings import settings


def main() -> None:
    uvicorn.run(
        "kiss_loyalty.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
