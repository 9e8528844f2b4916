"""Allows ``python -m memubot``"""

import sys

from .cli import main

sys.exit(main())
