"""Run the terminal backend: ``python -m cryptoterm``."""

import uvicorn

from .main import create_app, load_settings


def main() -> None:
    settings = load_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
