"""Command line interface for running the API server."""
import argparse
import logging

import uvicorn

from config import get_settings, SettingsError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def main():
    parser = argparse.ArgumentParser(description="Run the card market API server")
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=8000)
    args = parser.parse_args()

    try:
        get_settings()
    except SettingsError as e:
        logger.error(str(e))
        raise SystemExit(1)

    uvicorn.run("api:app", host=args.host, port=args.port, log_level="info")

if __name__ == "__main__":
    main()
