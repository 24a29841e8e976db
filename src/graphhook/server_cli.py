"""CLI entry point for the graphhook webhook server."""

import argparse
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="graphhook-server",
        description="graphhook: Microsoft Graph change notification relay to Event Grid",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode: colored console logs instead of JSON",
    )
    parser.add_argument(
        "--private-key-path",
        default=None,
        help="PEM file holding the notification decryption key",
    )
    args = parser.parse_args(argv)

    # Settings are read when graphhook.main is imported by uvicorn
    if args.dev:
        os.environ["GRAPHHOOK_JSON_LOGS"] = "0"
    if args.private_key_path:
        os.environ["GRAPHHOOK_PRIVATE_KEY_PATH"] = args.private_key_path

    import uvicorn

    uvicorn.run("graphhook.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
