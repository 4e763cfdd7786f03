"""Run the API with uvicorn: ``python -m budmatch``."""

import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("budmatch.api.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
