"""
Config - Paths, limits and encoder defaults for the GIF pipeline.

Values can be overridden from the environment (or a .env file in the
working directory).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("GIFSMITH_DATA_DIR", str(BASE_DIR / "data")))
FONTS_DIR = Path(os.getenv("GIFSMITH_FONTS_DIR", str(DATA_DIR / "fonts")))
OUTPUT_DIR = DATA_DIR / "output"

# Input limits
MAX_DIMENSION = 10000
MAX_UPLOAD_BYTES = int(float(os.getenv("GIFSMITH_MAX_UPLOAD_MB", "10")) * 1024 * 1024)

# Frame sequence limits
MIN_FRAMES = 2
MAX_FRAMES = 60

# Encoder
DEFAULT_QUALITY = int(os.getenv("GIFSMITH_QUALITY", "10"))
MIN_QUALITY = 1
MAX_QUALITY = 30
DEFAULT_BACKGROUND = (255, 255, 255)

# GIF stores loop counts and frame delays (centiseconds) as 16-bit fields
MAX_LOOP_COUNT = 0xFFFF
MAX_DELAY_CS = 0xFFFF

# Text overlays
MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 200


def default_max_workers() -> int:
    """Worker threads used for frame synthesis (1 = sequential)."""
    env_value = os.getenv("GIFSMITH_MAX_WORKERS")
    cpu_count = os.cpu_count() or 1
    if env_value:
        return max(1, min(int(env_value), cpu_count))
    return cpu_count
