"""Shared API response models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AllocationStatResponse(BaseModel):
    """Aggregated allocations for one (type, tag) pair."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "type_name": "bytes",
                    "tag": "orders:GET /orders",
                    "alloc_count": 3,
                    "total_alloc_bytes": 3072,
                    "average_alloc_bytes": 1024,
                }
            ]
        }
    )
    type_name: str = Field(..., description="Type identifier of the tracked value")
    tag: str = Field(..., description="Caller-supplied tag")
    alloc_count: int = Field(..., description="Number of tracked allocations")
    total_alloc_bytes: int = Field(..., description="Cumulative estimated bytes")
    average_alloc_bytes: int = Field(..., description="total_alloc_bytes // alloc_count")


class RetentionStatResponse(BaseModel):
    """Heuristic retention estimate for one (type, tag) pair."""

    type_name: str = Field(..., description="Type identifier of the tracked value")
    tag: str = Field(..., description="Caller-supplied tag")
    retained_bytes: int = Field(..., description="Estimated retained bytes")
    retained_percent: float = Field(..., description="Retained bytes as a percent of heap")


class SuggestionResponse(BaseModel):
    """Optimization suggestion generated during the latest cycle."""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "id": "suggestion-7",
                    "type_name": "bytes",
                    "tag": "upload",
                    "severity": "critical",
                    "message": "High memory retention detected for bytes (tag=upload). ...",
                    "created_at": "2026-10-19T08:00:00Z",
                }
            ]
        }
    )
    id: str = Field(..., description="Unique suggestion identifier")
    type_name: str = Field(..., description="Type identifier")
    tag: str = Field(..., description="Tag")
    severity: str = Field(..., description="warning or critical")
    message: str = Field(..., description="Human-readable recommendation")
    created_at: str = Field(..., description="Cycle timestamp (ISO-8601, UTC)")


class SnapshotResponse(BaseModel):
    """Point-in-time heap counters plus top-10 allocation and retention tables."""

    # Null until the first sampling cycle completes.
    timestamp: str | None = Field(None, description="Cycle timestamp (ISO-8601, UTC)")
    heap_alloc_bytes: int = Field(0, description="Traced Python heap bytes")
    heap_inuse_bytes: int = Field(0, description="Process resident set size")
    heap_idle_bytes: int = Field(0, description="Reserved but not resident bytes")
    heap_released_bytes: int = Field(0, description="Traced bytes freed since the peak")
    num_gc: int = Field(0, description="Completed garbage collections")
    last_gc_unix: int = Field(0, description="Unix time of the last collection")
    next_gc_bytes: int = Field(0, description="Allocations left before the next collection")
    total_alloc_bytes: int = Field(0, description="Peak traced heap bytes")
    top_allocations: list[AllocationStatResponse] = Field(default_factory=list)
    top_retentions: list[RetentionStatResponse] = Field(default_factory=list)


class AlertResponse(BaseModel):
    """Alert synthesized from the latest snapshot and suggestions."""

    id: str = Field(..., description="Stable alert identifier")
    severity: str = Field(..., description="info, warning or critical")
    message: str = Field(..., description="Alert text")
    source: str = Field(..., description="Rule family: bootstrap, heap, retention, suggestion")
    created_at: str = Field(..., description="Evaluation timestamp (ISO-8601)")


class StatusResponse(BaseModel):
    status: str = Field(..., description="ok or ready")


class CaptureResponse(BaseModel):
    path: str = Field(..., description="Written heap snapshot file")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error summary")
    detail: str | None = Field(None, description="Optional diagnostic detail")
