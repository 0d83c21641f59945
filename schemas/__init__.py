"""
Pydantic schemas for data validation and serialization.

Schemas:
    transaction: Provider transaction feed records
    property: Provider property detail payloads and batch entries
    report: Sync and status refresh run reports
    api: API endpoint responses

Provider field aliases (snake_case and camelCase) are resolved here so the
rest of the engine sees one fixed shape.
"""

__all__ = [
    "RawTransactionRecord",
    "PropertyPayload",
    "EnrichmentResult",
    "MarketSyncReport",
    "SyncReport",
    "StatusRefreshReport",
    "HealthCheckResponse",
    "StatsResponse",
]
