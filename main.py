"""
main.py — Command-line entry point for the Job Market Sync layer.
Builds the providers and clients from configuration, runs the pipeline once
and logs what it derived.
"""

import argparse
import asyncio
import time
from datetime import datetime
from typing import Optional

from config import (
    API_BASE_URL, HTTP_TIMEOUT, RPC_URL, TOKEN_DB_PATH, WALLET_ADDRESS, WALLET_RPC_URL, validate_config,
)
from api import MarketApi
from ledger.web3_provider import Web3LedgerProvider
from pipeline import FetchPipeline
from profile_cache import ProfileCache
from token_store import TokenStore
from transport import AuthenticatedTransport
from monitoring import setup_logging, get_logger, log_snapshot_summary


async def run_async(address: Optional[str] = None, conversations: bool = False) -> dict:
    """Run one full pipeline pass for `address` (read-only when None)."""
    logger = get_logger("main")

    logger.info("=" * 60)
    logger.info("JOB MARKET SYNC — Starting run")
    logger.info(f"Timestamp: {datetime.now().isoformat()}")
    logger.info("=" * 60)

    for warning in validate_config():
        logger.warning(f"Config: {warning}")

    run_start = time.time()

    tokens = TokenStore(TOKEN_DB_PATH)
    transport = AuthenticatedTransport.create(tokens, base_url=API_BASE_URL, timeout=HTTP_TIMEOUT)
    api = MarketApi(transport)
    profiles = ProfileCache(api)

    public_provider = Web3LedgerProvider(RPC_URL, read_only=True)
    wallet_provider = None
    if address and WALLET_RPC_URL:
        wallet_provider = Web3LedgerProvider(WALLET_RPC_URL, account=address, read_only=False)
    elif address:
        logger.warning("No WALLET_RPC_URL configured — identity-scoped stages will stay empty")

    pipeline = FetchPipeline(api, profiles, public_provider=public_provider)
    transport.on_session_expired = pipeline.reset

    conversation_count = 0
    try:
        await pipeline.set_identity(address, wallet_provider)

        if conversations:
            found = await pipeline.fetch_conversations()
            conversation_count = len(found)
            for conv in found:
                logger.info(
                    f"  {conv.counterparty_display_name}: {len(conv.messages)} messages, "
                    f"last at {conv.last_message.created_at.isoformat()}"
                )
    finally:
        await transport.close()
        await public_provider.close()
        if wallet_provider is not None:
            await wallet_provider.close()

    state = pipeline.state
    run_duration = time.time() - run_start
    log_snapshot_summary(logger, state, run_duration)
    logger.info("JOB MARKET SYNC — Run complete")

    return {
        "jobs": len(state.all_jobs),
        "employer_jobs": len(state.employer_job_details),
        "applicants": len(state.applicants),
        "worker_jobs": len(state.worker_jobs),
        "disputes": len(state.disputes),
        "my_disputes": len(state.my_disputes),
        "conversations": conversation_count,
        "failures": sum(len(f) for f in state.failures.values()),
        "duration": run_duration,
    }


def run(argv=None) -> dict:
    parser = argparse.ArgumentParser(description="Aggregate marketplace ledger and message state")
    parser.add_argument("--address", default=WALLET_ADDRESS or None,
                        help="wallet address to load identity-scoped state for")
    parser.add_argument("--conversations", action="store_true",
                        help="also fetch and group direct-message conversations")
    args = parser.parse_args(argv)

    setup_logging()
    return asyncio.run(run_async(address=args.address, conversations=args.conversations))


if __name__ == "__main__":
    run()
