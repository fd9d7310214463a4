import argparse
import asyncio
import json
import logging
import os
import sys

from . import config
from .errors import AnalysisError
from .orchestrator import AnalysisOrchestrator
from .storage import InMemoryAnalysisStore
from .synthesizer import LLMSynthesizer

logger = logging.getLogger(__name__)

CLI_TENANT = "cli"


def default_api_key(mode: str) -> str:
    env_name = "DEEPSEEK_API_KEY" if mode == "deepseek" else "GOOGLE_API_KEY"
    return os.getenv(env_name, "")


async def run_analysis(url: str, pages=None, api_key: str = "", mode: str = config.LLM_MODE):
    """Run one analysis against a throwaway in-memory store and return the record."""
    orchestrator = AnalysisOrchestrator(InMemoryAnalysisStore(), LLMSynthesizer(mode=mode))
    try:
        if pages:
            task = await orchestrator.analyze_pages([url, *pages], CLI_TENANT, api_key)
        else:
            task = await orchestrator.analyze_site(url, CLI_TENANT, api_key)
        try:
            await task
        except AnalysisError as e:
            # Already written to the record as the failure reason.
            logger.debug(f"Run ended with {e.kind}")
        record = await orchestrator.get_record(CLI_TENANT)
        analyzed = await orchestrator.list_analyzed_pages(CLI_TENANT)
        return record, analyzed
    finally:
        await orchestrator.close()


def main(argv=None):
    config.configure_logging()

    parser = argparse.ArgumentParser(description="Build a business profile from a website")
    parser.add_argument("url", help="Website (homepage) URL to analyze")
    parser.add_argument("-p", "--page", action="append", dest="pages", default=[],
                        help="Analyze these pages together with URL instead of discovering pages (repeatable)")
    parser.add_argument("--mode", default=config.LLM_MODE, choices=["google", "deepseek"], help="LLM provider")
    parser.add_argument("--api-key", default=None, help="LLM API key (defaults to GOOGLE_API_KEY / DEEPSEEK_API_KEY)")
    args = parser.parse_args(argv)

    api_key = args.api_key or default_api_key(args.mode)
    try:
        record, analyzed = asyncio.run(run_analysis(args.url, args.pages, api_key, args.mode))
    except AnalysisError as e:
        print(f"Error: {e.describe()}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 1

    print(f"Status: {record.status.value}")
    if record.error_message:
        print(f"Error: {record.error_message}")
    if record.profile:
        print(json.dumps(record.profile.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    print(f"Pages analyzed: {len(analyzed)}")
    for page in analyzed:
        print(f"  - {page.page_url}")
    return 0 if record.status.value == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
