# ============================================================================
# File: ingestion/runner.py
# Description: Market sync orchestrator with checkpointed, resumable runs
# ============================================================================
"""
Sync Runner - Orchestrates Fetch, Classify, Enrich, Upsert, Checkpoint.

This module provides market-by-market sync orchestration with:
- Per-market isolation (one market failing never stops the next)
- Per-record isolation (one bad write never rolls back earlier writes)
- A watermark that only covers records already durably written
- A sync_runs audit row for every market run
"""

import asyncio
import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from core.config import MarketConfig, Settings, settings as default_settings
from core.exceptions import (
    SyncException,
    FatalConfigurationError,
    TransientFetchError,
    PersistenceError,
)
from ingestion.base import TransactionSource, GeoResolver
from ingestion.checkpoint import CheckpointManager
from ingestion.classifier import CompanyRegistry, CompanyRef, EntityType, classify
from ingestion.dedup import deduplicate_by_address, group_by_address
from ingestion.enricher import PropertyEnricher
from ingestion.fetcher import TransactionFetcher
from ingestion.loaders.property_loader import PropertyUpserter, PropertyFields, TransactionEntry
from ingestion.status import resolve_sync_status, resolve_transaction_type
from ingestion.transformers.normalizer import normalize_company_name, normalize_county_name
from models.base import SyncStatus
from models.sync_run import SyncRun
from schemas.property import LastSaleDetail, PropertyPayload
from schemas.report import DateRange, MarketSyncReport, SyncErrorEntry, SyncReport
from schemas.transaction import RawTransactionRecord

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ENRICHING = "enriching"
    CHECKPOINTING = "checkpointing"
    FAILED = "failed"


@dataclass
class ClassifiedRecord:
    """A deduplicated record with at least one corporate party"""
    record: RawTransactionRecord
    buyer_corporate: bool
    seller_corporate: bool


@dataclass
class SyncContext:
    """
    Mutable state of one market run.

    pending maps each address still waiting to be written to the earliest
    sale date seen for it; the watermark may not pass that date.
    """
    market: MarketConfig
    from_date: date
    to_date: date
    company_cache: Dict[str, CompanyRef] = field(default_factory=dict)
    state: SyncState = SyncState.IDLE

    boundary: Optional[date] = None
    watermark: Optional[date] = None
    pending: Dict[str, date] = field(default_factory=dict)

    records_fetched: int = 0
    addresses_unique: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    companies_added: int = 0

    # Successful writes not yet credited to the checkpoint
    unsynced: int = 0
    since_checkpoint: int = 0

    def observe_boundary(self, page_max: Optional[date]):
        if page_max is not None and (self.boundary is None or page_max > self.boundary):
            self.boundary = page_max

    def safe_boundary(self) -> Optional[date]:
        """Latest boundary the watermark may advance to without skipping pending work"""
        if not self.pending:
            return self.boundary
        earliest_pending = min(self.pending.values())
        if self.boundary is None:
            return earliest_pending
        return min(earliest_pending, self.boundary)

    def hold(self, record: RawTransactionRecord):
        """Keep the watermark at or before this record until its address is settled"""
        address = record.address_key
        record_date = _record_date(record)
        if address is None or record_date is None:
            return
        current = self.pending.get(address)
        if current is None or record_date < current:
            self.pending[address] = record_date

    def release(self, address: str):
        self.pending.pop(address, None)

    def to_report(self) -> MarketSyncReport:
        return MarketSyncReport(
            market=self.market.market_id,
            total_processed=self.processed,
            total_inserted=self.inserted,
            total_updated=self.updated,
            total_companies_added=self.companies_added,
            date_range_covered=DateRange(from_date=self.from_date, to_date=self.to_date),
            final_watermark=self.watermark,
        )


def _record_date(record: RawTransactionRecord) -> Optional[date]:
    return record.sale_date or record.recording_date


def _document_note(last_sale: Optional[LastSaleDetail]) -> Optional[str]:
    if last_sale is None or not last_sale.document_type:
        return None
    return f"Document Type: {last_sale.document_type}"


# ============================================================================
# MARKET RUNNER
# ============================================================================

class MarketSyncRunner:
    """
    Runs one market through IDLE -> FETCHING -> ENRICHING -> CHECKPOINTING -> IDLE.

    Any failure moves the run to FAILED, which still checkpoints whatever was
    durably written before re-raising.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        source: TransactionSource,
        config: Settings = default_settings,
        geo_resolver: Optional[GeoResolver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Optional[date] = None,
    ):
        self.db = db_session
        self.source = source
        self.config = config
        self.geo_resolver = geo_resolver
        self.today = today

        self.checkpoints = CheckpointManager(db_session, config.SYNC_DEFAULT_START_DATE)
        self.fetcher = TransactionFetcher(source, page_size=config.SYNC_PAGE_SIZE)
        self.enricher = PropertyEnricher(
            source,
            batch_size=config.SYNC_DETAIL_BATCH_SIZE,
            rate_limit_delay=config.SYNC_RATE_LIMIT_DELAY_SECONDS,
            sleep=sleep,
        )
        self.upserter = PropertyUpserter(db_session)
        self.registry: Optional[CompanyRegistry] = None
        self.context: Optional[SyncContext] = None
        self._run_pk: Optional[int] = None
        self._started_at: Optional[datetime] = None

    def report(self) -> Optional[MarketSyncReport]:
        """Report for the current (possibly failed) run"""
        return self.context.to_report() if self.context else None

    async def run(self, market: MarketConfig) -> MarketSyncReport:
        """
        Sync one market from its watermark up to today.

        Raises:
            SyncException: Any failure, after the best-effort checkpoint
        """
        market_id = market.market_id
        today = self.today or date.today()
        ctx = SyncContext(market=market, from_date=today, to_date=today)
        self.context = ctx

        try:
            watermark = await self.checkpoints.load(market_id)
            ctx.from_date = watermark
            ctx.watermark = watermark

            ctx.company_cache = await CompanyRegistry.load_cache(self.db)
            self.registry = CompanyRegistry(self.db, ctx.company_cache)

            await self.checkpoints.mark_running(market_id)
            await self._start_run(ctx)

            logger.info(f"[{market_id}] Sync starting from {ctx.from_date} to {ctx.to_date}")

            # --------------------------------------------------
            # PHASE 1: FETCH
            # --------------------------------------------------
            ctx.state = SyncState.FETCHING
            records: List[RawTransactionRecord] = []
            fetch_error: Optional[TransientFetchError] = None

            try:
                async for page in self.fetcher.fetch(market, ctx.from_date, ctx.to_date):
                    records.extend(page.records)
                    ctx.records_fetched += len(page.records)
                    ctx.observe_boundary(page.max_date)
                    for record in page.records:
                        ctx.hold(record)
                    await self._checkpoint(ctx)
            except TransientFetchError as e:
                # Keep what was fetched; the market is reported failed afterwards
                fetch_error = e
                logger.error(
                    f"[{market_id}] Fetch failed after {ctx.records_fetched} records: {e.message}",
                    extra={"error_context": e.to_dict()}
                )

            # --------------------------------------------------
            # PHASE 2: DEDUPLICATE AND CLASSIFY
            # --------------------------------------------------
            chosen = deduplicate_by_address(records, market.excluded_addresses)
            history = group_by_address(records, market.excluded_addresses)
            ctx.addresses_unique = len(chosen)

            candidates: Dict[str, ClassifiedRecord] = {}
            for address, record in chosen.items():
                classified = self._classify_record(record)
                if classified is None:
                    continue
                candidates[address] = classified

                dates = [d for d in (_record_date(r) for r in history.get(address, [record])) if d]
                if dates:
                    ctx.pending[address] = min(dates)

            # Addresses that will not be written no longer hold the watermark back
            for address in list(ctx.pending):
                if address not in candidates:
                    ctx.release(address)

            logger.info(
                f"[{market_id}] {ctx.records_fetched} records, {len(chosen)} unique addresses, "
                f"{len(candidates)} with a corporate party"
            )

            # --------------------------------------------------
            # PHASE 3: ENRICH AND UPSERT
            # --------------------------------------------------
            ctx.state = SyncState.ENRICHING
            await self._enrich_and_upsert(ctx, candidates, history)

            if fetch_error is not None:
                raise fetch_error

            # --------------------------------------------------
            # PHASE 4: CHECKPOINT
            # --------------------------------------------------
            ctx.state = SyncState.CHECKPOINTING
            await self._checkpoint(ctx)

            status = SyncStatus.SUCCESS if ctx.failed == 0 else SyncStatus.PARTIAL
            await self.checkpoints.mark_finished(market_id, status)
            await self._finish_run(ctx, status)

            ctx.state = SyncState.IDLE
            logger.info(
                f"[{market_id}] Sync complete: processed={ctx.processed} inserted={ctx.inserted} "
                f"updated={ctx.updated} failed={ctx.failed} companies_added={ctx.companies_added} "
                f"watermark={ctx.watermark}"
            )
            return ctx.to_report()

        except Exception as e:
            ctx.state = SyncState.FAILED

            if isinstance(e, SyncException):
                error = e
            else:
                logger.exception(f"[{market_id}] Unexpected error during market sync")
                error = SyncException(
                    "Unexpected error during market sync",
                    context={"market_id": market_id},
                    original_exception=e
                )

            error.context.setdefault("market_id", market_id)
            logger.error(
                f"[{market_id}] Sync failed: {error.message}",
                extra={"error_context": error.to_dict()}
            )

            await self.db.rollback()
            await self._checkpoint_after_failure(ctx, error)
            raise error

    # ------------------------------------------------------------------
    # classification
    # ------------------------------------------------------------------

    def _classify_record(self, record: RawTransactionRecord) -> Optional[ClassifiedRecord]:
        if self.config.SYNC_SKIP_NEW_CONSTRUCTION and record.is_new_construction_sale:
            return None

        buyer_type = classify(record.buyer_name, record.buyer_ownership_code)
        seller_type = classify(record.seller_name)

        if record.buyer_corporate is not None and record.buyer_corporate != (buyer_type == EntityType.CORPORATE):
            logger.debug(
                f"Provider corporate flag disagrees for buyer '{record.buyer_name}' "
                f"(provider={record.buyer_corporate}, classified={buyer_type.value})"
            )

        buyer_corporate = buyer_type == EntityType.CORPORATE
        seller_corporate = seller_type == EntityType.CORPORATE
        if not buyer_corporate and not seller_corporate:
            return None

        return ClassifiedRecord(
            record=record,
            buyer_corporate=buyer_corporate,
            seller_corporate=seller_corporate,
        )

    # ------------------------------------------------------------------
    # enrichment and persistence
    # ------------------------------------------------------------------

    async def _enrich_and_upsert(
        self,
        ctx: SyncContext,
        candidates: Dict[str, ClassifiedRecord],
        history: Dict[str, List[RawTransactionRecord]],
    ):
        market_id = ctx.market.market_id
        unwritten = set()

        async for batch in self.enricher.enrich_all(list(candidates), market_id=market_id):
            if batch.error:
                for address in batch.addresses:
                    ctx.release(address)
                continue

            for index, result in enumerate(batch.results):
                address = result.address
                if address not in candidates and result.address is None and index < len(batch.addresses):
                    address = batch.addresses[index]

                if address not in candidates:
                    logger.debug(f"[{market_id}] Ignoring detail for unrequested address {result.address}")
                    continue

                if not result.ok or result.payload.property_id is None:
                    logger.debug(f"[{market_id}] No property for {address}: {result.error}")
                    ctx.release(address)
                    continue

                written = await self._write_record(
                    ctx, address, candidates[address], result.payload, history.get(address, [])
                )
                if not written:
                    unwritten.add(address)

            # A failed write keeps its address pending so the watermark stays before it
            for address in batch.addresses:
                if address not in unwritten:
                    ctx.release(address)

            logger.info(
                f"[{market_id}] Batch {batch.batch_number}/{batch.total_batches} done: "
                f"processed={ctx.processed} inserted={ctx.inserted} updated={ctx.updated}"
            )

    async def _write_record(
        self,
        ctx: SyncContext,
        address: str,
        candidate: ClassifiedRecord,
        payload: PropertyPayload,
        history: Sequence[RawTransactionRecord],
    ) -> bool:
        """Write one property and its sale history; False when the write failed"""
        market_id = ctx.market.market_id
        ctx.processed += 1
        ctx.since_checkpoint += 1

        try:
            inserted = await self._sync_property(ctx, candidate, payload, history)
            await self.db.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            await self.db.rollback()
            ctx.failed += 1
            logger.error(f"[{market_id}] Failed to write property {payload.property_id} ({address}): {e}")
            written = False
        else:
            if inserted:
                ctx.inserted += 1
            else:
                ctx.updated += 1
            ctx.unsynced += 1
            ctx.release(address)
            written = True

        if ctx.since_checkpoint >= self.config.SYNC_CHECKPOINT_EVERY:
            await self._checkpoint(ctx)
        return written

    async def _sync_property(
        self,
        ctx: SyncContext,
        candidate: ClassifiedRecord,
        payload: PropertyPayload,
        history: Sequence[RawTransactionRecord],
    ) -> bool:
        record = candidate.record
        county = await self._resolve_county(payload)

        buyer = seller = None
        if candidate.buyer_corporate:
            buyer = await self._register_company(ctx, record.buyer_name, county)
        if candidate.seller_corporate:
            seller = await self._register_company(ctx, record.seller_name, county)

        status, listing_status = resolve_sync_status(
            payload.listing_status or record.listing_status,
            buyer_corporate=candidate.buyer_corporate,
            seller_corporate=candidate.seller_corporate,
        )

        company = buyer or seller

        fields = PropertyFields(
            company_id=company.id if company else None,
            owner_id=buyer.id if buyer else None,
            buyer_id=buyer.id if buyer else None,
            seller_id=seller.id if seller else None,
            status=status,
            listing_status=listing_status,
            county=county,
            msa=payload.msa or ctx.market.msa,
        )

        # Company writes commit on their own, so resolve every party before the property write
        entries = await self._build_history(ctx, history or [record], payload, county)

        property_id, inserted = await self.upserter.upsert(payload.property_id, fields, payload)
        if entries:
            await self.upserter.record_transactions(property_id, entries)

        return inserted

    async def _resolve_county(self, payload: PropertyPayload) -> Optional[str]:
        county = normalize_county_name(payload.county)
        if county:
            return county

        address_county = normalize_county_name(payload.address.county) if payload.address else None
        if address_county:
            return address_county

        if self.geo_resolver is not None and payload.coordinates is not None:
            latitude, longitude = payload.coordinates
            return normalize_county_name(
                await self.geo_resolver.reverse_geocode_county(latitude, longitude)
            )
        return None

    async def _register_company(self, ctx: SyncContext, name: Optional[str], county: Optional[str]) -> Optional[CompanyRef]:
        company, created = await self.registry.upsert(name, county)
        if created:
            ctx.companies_added += 1
        return company

    async def _build_history(
        self,
        ctx: SyncContext,
        records: Sequence[RawTransactionRecord],
        payload: PropertyPayload,
        county: Optional[str],
    ) -> List[TransactionEntry]:
        """Sale-history entries for every corporate transaction at the address"""
        valuation = payload.valuation.value if payload.valuation else None
        last_sale = payload.last_sale
        entries = []

        for record in records:
            if self.config.SYNC_SKIP_NEW_CONSTRUCTION and record.is_new_construction_sale:
                continue

            transaction_date = record.recording_date or record.sale_date
            if transaction_date is None:
                continue

            buyer_corporate = classify(record.buyer_name, record.buyer_ownership_code) == EntityType.CORPORATE
            seller_corporate = classify(record.seller_name) == EntityType.CORPORATE
            transaction_type = resolve_transaction_type(buyer_corporate, seller_corporate)
            if transaction_type is None:
                continue

            buyer = await self._register_company(ctx, record.buyer_name, county) if buyer_corporate else None
            seller = await self._register_company(ctx, record.seller_name, county) if seller_corporate else None

            sale_price = record.sale_price
            if sale_price is None and last_sale is not None:
                sale_price = last_sale.price
            price_suspect = False
            if (
                sale_price is not None
                and valuation is not None
                and abs(valuation - sale_price) > self.config.AVM_DIVERGENCE_THRESHOLD
            ):
                logger.warning(
                    f"[{ctx.market.market_id}] Sale price {sale_price} for property {payload.property_id} "
                    f"diverges from valuation {valuation}, not storing it"
                )
                sale_price = None
                price_suspect = True

            entries.append(TransactionEntry(
                transaction_type=transaction_type,
                transaction_date=transaction_date,
                company_id=(buyer or seller).id if (buyer or seller) else None,
                buyer_id=buyer.id if buyer else None,
                seller_id=seller.id if seller else None,
                sale_price=sale_price,
                price_suspect=price_suspect,
                mtg_type=last_sale.mtg_type if last_sale else None,
                mtg_amount=last_sale.mtg_amount if last_sale else None,
                buyer_name=normalize_company_name(record.buyer_name),
                seller_name=normalize_company_name(record.seller_name),
                notes=record.document_type or _document_note(last_sale),
            ))

        return entries

    # ------------------------------------------------------------------
    # checkpointing and audit
    # ------------------------------------------------------------------

    async def _checkpoint(self, ctx: SyncContext):
        ctx.watermark = await self.checkpoints.advance(
            ctx.market.market_id,
            ctx.safe_boundary(),
            processed=ctx.unsynced,
        )
        ctx.unsynced = 0
        ctx.since_checkpoint = 0

    async def _checkpoint_after_failure(self, ctx: SyncContext, error: SyncException):
        """Best-effort checkpoint of durably written work; never masks the original error"""
        market_id = ctx.market.market_id
        try:
            if ctx.watermark is not None:
                await self._checkpoint(ctx)
            await self.checkpoints.mark_finished(market_id, SyncStatus.FAILED, error.message)
            await self._finish_run(ctx, SyncStatus.FAILED, error)
        except (SQLAlchemyError, SyncException) as checkpoint_error:
            await self.db.rollback()
            logger.error(f"[{market_id}] Could not record failure checkpoint: {checkpoint_error}")

    async def _start_run(self, ctx: SyncContext):
        self._started_at = datetime.utcnow()
        run = SyncRun(
            run_id=uuid.uuid4(),
            market_id=ctx.market.market_id,
            status=SyncStatus.RUNNING,
            started_at=self._started_at,
            watermark_before=ctx.watermark,
        )
        self.db.add(run)
        await self.db.commit()
        self._run_pk = run.id

    async def _finish_run(
        self,
        ctx: SyncContext,
        status: SyncStatus,
        error: Optional[SyncException] = None
    ):
        if self._run_pk is None:
            return

        completed_at = datetime.utcnow()
        await self.db.execute(
            update(SyncRun)
            .where(SyncRun.id == self._run_pk)
            .values(
                status=status,
                completed_at=completed_at,
                duration_seconds=(completed_at - self._started_at).total_seconds(),
                records_fetched=ctx.records_fetched,
                addresses_unique=ctx.addresses_unique,
                records_processed=ctx.processed,
                records_inserted=ctx.inserted,
                records_updated=ctx.updated,
                records_failed=ctx.failed,
                companies_added=ctx.companies_added,
                watermark_after=ctx.watermark,
                error_message=error.message if error else None,
                error_details=error.to_dict() if error else None,
            )
        )
        await self.db.commit()


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class SyncOrchestrator:
    """
    Entry point for a sync run across markets.

    Markets run sequentially, each with its own session. A market failure is
    recorded in the report and the next market still runs; only a
    configuration error aborts the whole run, before any market starts.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        source: Optional[TransactionSource] = None,
        geo_resolver: Optional[GeoResolver] = None,
        config: Settings = default_settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Optional[date] = None,
    ):
        if session_factory is None:
            from core.database import async_session_maker
            session_factory = async_session_maker

        self.session_factory = session_factory
        self.source = source
        self.geo_resolver = geo_resolver
        self.config = config
        self.sleep = sleep
        self.today = today

    def resolve_markets(self, market_ids: Optional[Sequence[str]] = None) -> List[MarketConfig]:
        """
        Raises:
            FatalConfigurationError: Unknown market id or no markets configured
        """
        if not market_ids:
            markets = list(self.config.SYNC_MARKETS)
            if not markets:
                raise FatalConfigurationError("No markets configured")
            return markets

        markets = []
        unknown = []
        for market_id in market_ids:
            market = self.config.get_market(market_id)
            if market is None:
                unknown.append(market_id)
            else:
                markets.append(market)

        if unknown:
            raise FatalConfigurationError(
                f"Unknown market id(s): {', '.join(unknown)}",
                context={
                    "unknown_markets": unknown,
                    "configured": [m.market_id for m in self.config.SYNC_MARKETS]
                }
            )
        return markets

    async def run_sync(self, market_ids: Optional[Sequence[str]] = None) -> SyncReport:
        """
        Sync the given markets (all configured markets by default).

        Raises:
            FatalConfigurationError: Bad market ids or missing provider credentials
        """
        markets = self.resolve_markets(market_ids)

        if self.source is not None:
            return await self._run_markets(self.source, self.geo_resolver, markets)

        if not self.config.PROVIDER_API_URL or not self.config.PROVIDER_API_KEY:
            raise FatalConfigurationError(
                "PROVIDER_API_URL and PROVIDER_API_KEY must be set",
                context={
                    "missing": [
                        name for name in ("PROVIDER_API_URL", "PROVIDER_API_KEY")
                        if not getattr(self.config, name)
                    ]
                }
            )

        from ingestion.extractors.geocoder import CensusGeoResolver
        from ingestion.extractors.provider_client import ProviderClient

        geo_resolver = self.geo_resolver or CensusGeoResolver(self.config.GEOCODER_URL)
        async with ProviderClient(
            self.config.PROVIDER_API_URL,
            self.config.PROVIDER_API_KEY,
            timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
        ) as client:
            return await self._run_markets(client, geo_resolver, markets)

    async def _run_markets(
        self,
        source: TransactionSource,
        geo_resolver: Optional[GeoResolver],
        markets: List[MarketConfig],
    ) -> SyncReport:
        report = SyncReport()

        for market in markets:
            async with self.session_factory() as session:
                runner = MarketSyncRunner(
                    session,
                    source,
                    config=self.config,
                    geo_resolver=geo_resolver,
                    sleep=self.sleep,
                    today=self.today,
                )
                try:
                    market_report = await runner.run(market)
                except SyncException as e:
                    report.errors.append(SyncErrorEntry(market=market.market_id, message=e.message))
                    market_report = runner.report()

                if market_report is not None:
                    report.per_market.append(market_report)

        logger.info(
            f"Sync finished: {len(report.per_market)} markets, {len(report.errors)} errors, "
            f"{sum(m.total_inserted for m in report.per_market)} inserted, "
            f"{sum(m.total_updated for m in report.per_market)} updated"
        )
        return report
