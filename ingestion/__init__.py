"""
Market sync pipeline components.

Modules:
    base: Interfaces for the transaction source and geocoder
    fetcher: Paginated transaction feed walker
    dedup: One record per address
    classifier: Trust/individual/corporate classification and company registry
    enricher: Rate-limited batch detail lookups
    status: Listing status and transaction direction mapping
    checkpoint: Per-market watermark persistence
    runner: Market state machine and multi-market orchestrator
    status_refresh: Periodic listing status refresh
    scheduler: APScheduler integration for the daily jobs

Subpackages:
    extractors: Provider HTTP client and Census geocoder
    transformers: Name, county, property type and value normalization
    loaders: Property upsert with satellites and sale history

Usage:
    from ingestion.runner import SyncOrchestrator

    report = await SyncOrchestrator().run_sync(["SD", "LA"])
    for market in report.per_market:
        print(market.market, market.total_inserted, market.final_watermark)

Error Handling:
    Failures are raised as core.exceptions.SyncException subclasses. A
    market failure is recorded in the report and the next market still runs;
    FatalConfigurationError aborts the run before any market starts.
"""

__all__ = [
    "TransactionSource",
    "GeoResolver",
    "SyncOrchestrator",
    "MarketSyncRunner",
    "StatusRefresher",
    "ProviderClient",
    "CensusGeoResolver",
]
