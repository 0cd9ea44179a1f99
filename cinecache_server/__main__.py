import uvicorn

from cinecache_server.api.deps import get_settings


def main():
    settings = get_settings()

    uvicorn.run(
        "cinecache_server.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
