import argparse

import uvicorn

from .main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the in-memory mission store")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
