import os
import logging

from dotenv import load_dotenv

load_dotenv()

# --- Crawler ---
USER_AGENT = os.getenv(
    "PROFILER_USER_AGENT",
    "Mozilla/5.0 (compatible; SiteProfilerBot/1.0; +https://github.com/site-profiler)",
)
# Primary page scrape: redirects followed (each hop re-validated).
SCRAPE_TIMEOUT_MS = int(os.getenv("SCRAPE_TIMEOUT_MS", "15000"))
SCRAPE_MAX_BYTES = int(os.getenv("SCRAPE_MAX_BYTES", str(5 * 1024 * 1024)))
# Homepage pre-fetch used only for link discovery: no redirects.
DISCOVERY_TIMEOUT_MS = int(os.getenv("DISCOVERY_TIMEOUT_MS", "10000"))
DISCOVERY_MAX_BYTES = int(os.getenv("DISCOVERY_MAX_BYTES", str(500 * 1024)))
MAX_DISCOVERED_PAGES = int(os.getenv("MAX_DISCOVERED_PAGES", "5"))
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", "5"))
# Per-page cap on the text handed to the synthesizer.
MAX_CONTENT_CHARS = int(os.getenv("MAX_CONTENT_CHARS", "25000"))

# --- LLM ---
LLM_MODE = os.getenv("LLM_MODE", "google").lower()
GOOGLE_MODEL = os.getenv("GOOGLE_MODEL", "gemini-1.5-flash-latest")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
DEEPSEEK_API_BASE = os.getenv("DEEPSEEK_API_BASE")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))

# --- Service ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8016"))

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging for entry points (API server, CLI)."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
