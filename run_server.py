#!/usr/bin/env python3
"""
WizardDAO API Server Launcher
"""

import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from dotenv import load_dotenv

from api import create_app
from monitoring import configure_logging


def run_server():
    """Run the Flask development server."""
    load_dotenv()
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))
    app = create_app()

    print(f"\n{'='*60}")
    print("WizardDAO API Server")
    print(f"{'='*60}")
    print(f"Listening on: http://{host}:{port}")
    print(f"Storage: {os.getenv('STORAGE_BACKEND', 'json')}")
    print(f"{'='*60}\n")

    app.run(host=host, port=port, debug=os.getenv("FLASK_DEBUG", "").lower() == "true")


if __name__ == '__main__':
    run_server()
