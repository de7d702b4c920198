"""
Command-line entry point.

Usage:
    deal-intel analyze [--limit N] [--email-days N] [--max-emails N]
                       [--dry-run] [--verbose] [--json]

Reads credentials from the environment (or a project .env file), runs one
analysis for PIPEDRIVE_USER_ID and prints the ranked deals.
"""

import argparse
import asyncio
import json
import sys

from .clients.gmail_client import GmailClient
from .clients.openai_client import OpenAIClient
from .clients.pipedrive_client import PipedriveClient
from .config import config
from .errors import DealIntelError
from .logging import configure_logging, get_logger
from .pipeline.pipeline import DealAnalysisPipeline, DealAnalysisResult
from .pipeline.presenter import render_contexts, render_diagnostics, render_text, to_payload

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='deal-intel',
        description='Enrich open Pipedrive deals with Gmail history and rank them',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    analyze = subparsers.add_parser('analyze', help='Analyze and prioritize open deals')
    analyze.add_argument(
        '--limit',
        type=int,
        default=50,
        help='Maximum number of open deals to analyze (default: 50)'
    )
    analyze.add_argument(
        '--email-days',
        type=int,
        default=90,
        help='Email lookback window in days (default: 90)'
    )
    analyze.add_argument(
        '--max-emails',
        type=int,
        default=10,
        help='Maximum emails per contact (default: 10)'
    )
    analyze.add_argument(
        '--dry-run', '-n',
        action='store_true',
        help='Build and print deal contexts without calling the model'
    )
    analyze.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Debug logging and per-deal enrichment diagnostics'
    )
    analyze.add_argument(
        '--json',
        action='store_true',
        help='Print the JSON payload instead of the text report'
    )
    return parser


def missing_config(dry_run: bool) -> list[str]:
    """Required keys that are unset. The OpenAI key is optional for dry runs."""
    missing = config.validate()
    if dry_run:
        missing = [key for key in missing if key != 'OPENAI_API_KEY']
    return missing


async def run_analysis(args: argparse.Namespace) -> DealAnalysisResult:
    """Build the clients from config, run one analysis and close them."""
    openai = None
    if not args.dry_run:
        openai = OpenAIClient(
            api_key=config.OPENAI_API_KEY,
            chat_model=config.OPENAI_CHAT_MODEL,
            max_attempts=config.OPENAI_MAX_ATTEMPTS,
        )

    try:
        async with PipedriveClient(
            api_token=config.PIPEDRIVE_API_TOKEN,
            base_url=config.PIPEDRIVE_BASE_URL,
        ) as pipedrive, GmailClient(
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            refresh_token=config.GOOGLE_GMAIL_REFRESH_TOKEN,
        ) as gmail:
            pipeline = DealAnalysisPipeline(
                crm_client=pipedrive,
                mailbox_client=gmail,
                openai_client=openai,
                owner_id=config.PIPEDRIVE_USER_ID,
                concurrency_limit=config.ENRICHMENT_CONCURRENCY,
                activity_limit=config.ACTIVITY_LIMIT,
            )
            return await pipeline.analyze(
                limit=args.limit,
                email_days=args.email_days,
                max_emails=args.max_emails,
                dry_run=args.dry_run,
            )
    finally:
        if openai is not None:
            await openai.close()


def format_result(result: DealAnalysisResult, args: argparse.Namespace) -> str:
    if args.json:
        payload = to_payload(result, include_diagnostics=args.verbose)
        return json.dumps(payload, indent=2, default=str)
    if result.dry_run:
        return render_contexts(result.contexts)
    return render_text(
        result.analysis,
        config.PIPEDRIVE_DOMAIN,
        warnings=result.warnings,
        deals_analyzed=result.deals_analyzed,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(json_output=False, log_level='DEBUG' if args.verbose else config.LOG_LEVEL)

    missing = missing_config(args.dry_run)
    if missing:
        print(f"Missing required configuration: {', '.join(missing)}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(run_analysis(args))
    except DealIntelError as e:
        logger.error('cli.failed', error=str(e), error_type=type(e).__name__)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.verbose and result.contexts:
        print(render_diagnostics(result.contexts), file=sys.stderr)

    print(format_result(result, args))
    return 0


if __name__ == '__main__':
    sys.exit(main())
