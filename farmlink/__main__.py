"""Run the FarmLink API with uvicorn: ``python -m farmlink``."""

import uvicorn

from farmlink.config import settings


def main() -> None:
    uvicorn.run(
        "farmlink.main:app",
        host=settings.farmlink_host,
        port=settings.farmlink_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    main()
