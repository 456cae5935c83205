"""Run the API with uvicorn: ``python -m otayori``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "otayori.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3000")),
        log_config=None,  # logging is configured by otayori.logging_utils
    )


if __name__ == "__main__":
    main()
