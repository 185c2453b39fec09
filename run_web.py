#!/usr/bin/env python
"""
Start the AgriRent FastAPI service.
"""

import os
import sys
import argparse
import logging
import uvicorn

# project root on the import path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from agrirent.infra.config import get_config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    cfg = get_config()
    parser = argparse.ArgumentParser(
        description="Start the AgriRent marketplace API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_web.py                      # default settings
    python run_web.py --port 8080          # listen on 8080
    python run_web.py --store memory       # in-memory document store
    python run_web.py --reload             # auto reload for development
        """
    )

    parser.add_argument(
        '--host',
        type=str,
        default='0.0.0.0',
        help='bind address (default: 0.0.0.0)'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=cfg.fastapi_port,
        help=f'port (default: {cfg.fastapi_port})'
    )

    parser.add_argument(
        '--reload',
        action='store_true',
        help='reload on code changes (development only)'
    )

    parser.add_argument(
        '--store',
        type=str,
        choices=['sqlite', 'memory'],
        default=None,
        help='document store backend (default: DOCUMENT_STORE or sqlite)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        default=1,
        help='worker processes (default: 1)'
    )

    args = parser.parse_args()

    if args.store:
        os.environ['DOCUMENT_STORE'] = args.store
        get_config.cache_clear()

    host = args.host if args.host != '0.0.0.0' else 'localhost'
    logger.info(f"Starting FastAPI server: http://{host}:{args.port}")
    logger.info(f"Document store: {get_config().document_store}")
    logger.info(f"Auto reload: {args.reload}")
    logger.info(f"Workers: {args.workers}")
    logger.info(f"API docs: http://{host}:{args.port}/docs")

    uvicorn.run(
        "agrirent.api.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level="info"
    )


if __name__ == '__main__':
    main()
