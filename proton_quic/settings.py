# settings.py
import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO") #priority levels: DEBUG < INFO < WARNING < ERROR < CRITICAL
ENABLE_CONSOLE_LOG = os.getenv("ENABLE_CONSOLE_LOG", "true").lower() == "true"
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"

PROTON_CONFIG = os.getenv("PROTON_CONFIG", "")
