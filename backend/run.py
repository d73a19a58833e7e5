import argparse
import os
import sys

import uvicorn


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Hammock request engine")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host interface to bind")
    parser.add_argument("--port", type=int, default=8334, help="Port to run the engine on")
    parser.add_argument("--state", type=str, default=None, help="Path of the saved collection file")
    parser.add_argument("--log-level", type=str, default="error", help="Log verbosity (debug, info, error)")

    args = parser.parse_args()

    # Settings are read from the environment when the app is created
    os.environ["HAMMOCK_LOG_LEVEL"] = args.log_level
    if args.state:
        os.environ["HAMMOCK_STATE_PATH"] = os.path.abspath(os.path.expanduser(args.state))

    from hammock.core.config import Settings
    from hammock.core.errors import ConfigError
    from hammock.core.log import setup_logging

    try:
        settings = Settings.from_env()
    except ConfigError as ex:
        print(f"Invalid configuration: {ex}")
        sys.exit(1)
    try:
        log_path = setup_logging(settings.log_level, settings.log_dir)
    except (ValueError, OSError) as ex:
        print(f"Could not initialize logging: {ex}")
        sys.exit(1)

    from hammock.main import create_app

    print(f"Starting Hammock on http://{args.host}:{args.port}")
    print(f"State file: {settings.state_path}")
    print(f"Log file: {log_path}")

    uvicorn.run(
        create_app(settings),
        host=args.host,
        port=args.port,
        reload=False,
        log_level="warning",
    )
