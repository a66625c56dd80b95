"""Main entry point for the heartrate MQTT client."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from heartrate_mqtt.main import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
