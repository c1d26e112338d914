"""Configuration module for Novel Cast Pipeline."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Configuration
LLM_API_KEY = (
    os.getenv("LLM_API_KEY")
    or os.getenv("OPENROUTER_API_KEY")
    or os.getenv("OPENAI_API_KEY")
)
LLM_API_BASE_URL = os.getenv("LLM_API_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
LLM_MODEL = os.getenv("LLM_MODEL", "anthropic/claude-3.5-sonnet")

# Context budgeting
# Token estimation: 1 token ~ 4 characters. A fixed approximation, not a tokenizer.
DEFAULT_CONTEXT_LENGTH = int(os.getenv("DEFAULT_CONTEXT_LENGTH", "200000"))
DEFAULT_LISTED_CONTEXT_LENGTH = 4096  # Used when /models omits context_length
CHARS_PER_TOKEN = 4
CONTEXT_INPUT_RATIO = 0.5  # Share of the context window given to book text
CHUNK_FILL_RATIO = 0.8  # Share of the safe input used per reduction chunk
MAX_RESPONSE_TOKENS = int(os.getenv("MAX_RESPONSE_TOKENS", "8000"))

# Timeouts (seconds)
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "300"))
CONNECTION_TEST_TIMEOUT = float(os.getenv("CONNECTION_TEST_TIMEOUT", "15"))

# Retry / continuation bounds
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
MAX_CONTINUATIONS = int(os.getenv("MAX_CONTINUATIONS", "3"))
MAX_REDUCTION_PASSES = 3
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "2.0"))
RETRY_MAX_DELAY = 60.0

# Concurrency and rate limiting
MAX_PARALLEL_DETAILS = int(os.getenv("MAX_PARALLEL_DETAILS", "3"))
API_CALL_DELAY = float(os.getenv("API_CALL_DELAY", "0"))  # Seconds between API calls

# Progress tracking
PROGRESS_TTL_SECONDS = float(os.getenv("PROGRESS_TTL_SECONDS", "3600"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Output Paths
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "./output"))
ANALYSES_DIR = OUTPUT_DIR / "analyses"
