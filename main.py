"""
Main entry point for MEmu Gather Bot
Provides command-line interface and bot initialization
"""

import sys
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent))

from memubot.cli import main

if __name__ == "__main__":
    sys.exit(main())
