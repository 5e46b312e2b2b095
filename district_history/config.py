import os
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Load environment variables from .env file if it exists
load_dotenv()

# Paths
PROJ_ROOT = Path(__file__).resolve().parents[1]
logger.info(f"PROJ_ROOT path is: {PROJ_ROOT}")

DATA_DIR = PROJ_ROOT / "data"
EXTERNAL_DATA_DIR = DATA_DIR / "external"

# Local mirror of the district shape files (cds/, states/, 1789-2012/)
DISTRICTS_DIR = EXTERNAL_DATA_DIR / "districts"

# Either an http(s) base URL or a directory laid out like DISTRICTS_DIR
DISTRICT_SHAPES_SOURCE = os.getenv("DISTRICT_SHAPES_SOURCE", str(DISTRICTS_DIR))
DISTRICT_SHAPES_TIMEOUT = float(os.getenv("DISTRICT_SHAPES_TIMEOUT", "30"))

# Requests in flight per batch; higher values exhaust the remote side
DISTRICT_FETCH_CONCURRENCY = int(os.getenv("DISTRICT_FETCH_CONCURRENCY", "16"))

# If tqdm is installed, configure loguru with tqdm.write
# https://github.com/Delgan/loguru/issues/135
try:
    from tqdm import tqdm

    logger.remove(0)
    logger.add(lambda msg: tqdm.write(msg, end=""), colorize=True)
except ModuleNotFoundError:
    pass
