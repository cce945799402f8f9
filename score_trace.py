"""
Run-scoped tracing for GeoScore scoring runs.

Provides a thread-local TraceContext that records:
  - Per-stage timing (stage_name, start/end, elapsed_ms, errors)
  - Per-factor zone decisions (factor, matched zone, resulting score)
  - End-of-run summary (total_elapsed, outcome, model version)

Usage:
    from score_trace import TraceContext, get_trace, set_trace, clear_trace

    ctx = TraceContext(trace_id=location_key)
    set_trace(ctx)
    ...
    ctx.log_summary()
    clear_trace()

    # Around each stage, and inside scorers:
    timed_stage("safety", score_safety, coords, places)
    skip_stage("cache_put", "seeded")
    trace = get_trace()
    if trace:
        trace.record_zone("safety", "green", 91)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Data classes for trace records
# =============================================================================

@dataclass
class ZoneRecord:
    """Which zone decided a factor, and the score it produced."""
    factor: str      # "footTraffic" | "safety" | "accessibility" | "competition"
    zone: str        # "green", "yellow", "default", "stops=4", ...
    score: int
    stage: str = ""


@dataclass
class StageRecord:
    """One scoring stage (factors, aggregate, cache_put, ...)."""
    stage_name: str
    start_ts: float = 0.0
    end_ts: float = 0.0
    elapsed_ms: int = 0
    skipped: bool = False
    error_class: str = ""
    error_message: str = ""


# =============================================================================
# Trace context
# =============================================================================

@dataclass
class TraceContext:
    """Accumulates timing and zone decisions for a single scoring run."""
    trace_id: str
    run_start: float = field(default_factory=time.time)
    stages: List[StageRecord] = field(default_factory=list)
    zones: List[ZoneRecord] = field(default_factory=list)
    model_version: str = ""
    _current_stage: str = ""

    def start_stage(self, name: str):
        self._current_stage = name

    def end_stage(self):
        self._current_stage = ""

    def record_stage(
        self,
        stage_name: str,
        start_ts: float,
        end_ts: float,
        skipped: bool = False,
        error_class: str = "",
        error_message: str = "",
    ):
        rec = StageRecord(
            stage_name=stage_name,
            start_ts=start_ts,
            end_ts=end_ts,
            elapsed_ms=int((end_ts - start_ts) * 1000),
            skipped=skipped,
            error_class=error_class,
            error_message=error_message,
        )
        self.stages.append(rec)

        status = "SKIP" if skipped else ("ERR" if error_class else "OK")
        if error_class:
            err_info = f" err={error_class}: {error_message}"
        elif skipped and error_message:
            err_info = f" reason={error_message}"
        else:
            err_info = ""
        logger.info(
            "  [stage] trace=%s %s %s %dms%s",
            self.trace_id,
            stage_name,
            status,
            rec.elapsed_ms,
            err_info,
        )

    def record_zone(self, factor: str, zone: str, score: int):
        self.zones.append(
            ZoneRecord(factor=factor, zone=zone, score=score, stage=self._current_stage)
        )
        logger.debug(
            "  [zone] trace=%s factor=%s zone=%s score=%d",
            self.trace_id, factor, zone, score,
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summary_dict(self) -> Dict[str, Any]:
        """Return a summary dict suitable for logging and JSON output."""
        total_elapsed = int((time.time() - self.run_start) * 1000)
        # Skipped stages (no cache, demo data) do not degrade the outcome.
        completed = [s for s in self.stages if not s.skipped and not s.error_class]
        skipped = [s for s in self.stages if s.skipped]
        errored = [s for s in self.stages if s.error_class]

        if errored:
            outcome = "partial" if completed else "error"
        else:
            outcome = "success" if completed else "empty"

        result = {
            "trace_id": self.trace_id,
            "total_elapsed_ms": total_elapsed,
            "stages_completed": len(completed),
            "stages_skipped": len(skipped),
            "stages_errored": len(errored),
            "final_outcome": outcome,
            "zones": {z.factor: z.zone for z in self.zones},
        }
        if self.model_version:
            result["model_version"] = self.model_version
        return result

    def log_summary(self):
        """Emit a single structured summary log line."""
        s = self.summary_dict()
        logger.info(
            "[trace-summary] trace=%s total_ms=%d completed=%d skipped=%d "
            "errored=%d outcome=%s",
            s["trace_id"],
            s["total_elapsed_ms"],
            s["stages_completed"],
            s["stages_skipped"],
            s["stages_errored"],
            s["final_outcome"],
        )

    def stages_to_list(self) -> List[Dict[str, Any]]:
        return [
            {
                "stage": s.stage_name,
                "elapsed_ms": s.elapsed_ms,
                "skipped": s.skipped,
                "reason": s.error_message if s.skipped else None,
                "error": f"{s.error_class}: {s.error_message}" if s.error_class else None,
            }
            for s in self.stages
        ]

    def full_trace_dict(self) -> Dict[str, Any]:
        """Complete trace data for debug output."""
        summary = self.summary_dict()
        summary["stages"] = self.stages_to_list()
        return summary


# =============================================================================
# Thread-local storage
# =============================================================================

_trace_local = threading.local()


def get_trace() -> Optional[TraceContext]:
    """Get the current run's trace context, or None."""
    return getattr(_trace_local, "ctx", None)


def set_trace(ctx: Optional[TraceContext]):
    """Set the trace context for the current thread."""
    _trace_local.ctx = ctx


def clear_trace():
    """Clear the current trace context."""
    _trace_local.ctx = None


# =============================================================================
# Stage helpers
# =============================================================================

def timed_stage(stage_name, fn, *args, **kwargs):
    """Run *fn* with timing.  Logs duration and re-raises on failure."""
    trace = get_trace()
    if trace:
        trace.start_stage(stage_name)
    t0 = time.time()
    try:
        result = fn(*args, **kwargs)
        t1 = time.time()
        if trace:
            trace.record_stage(stage_name, t0, t1)
        else:
            logger.debug("  [stage] %s OK (%.3fs)", stage_name, t1 - t0)
        return result
    except Exception as exc:
        t1 = time.time()
        if trace:
            trace.record_stage(
                stage_name, t0, t1,
                error_class=type(exc).__name__,
                error_message=str(exc)[:200],
            )
        else:
            logger.warning("  [stage] %s FAILED (%.3fs)", stage_name, t1 - t0, exc_info=True)
        raise
    finally:
        if trace:
            trace.end_stage()


def skip_stage(stage_name: str, reason: str):
    """Record *stage_name* as skipped on the current trace, if any."""
    trace = get_trace()
    if trace:
        now = time.time()
        trace.record_stage(stage_name, now, now, skipped=True, error_message=reason)
    else:
        logger.debug("  [stage] %s SKIP (%s)", stage_name, reason)
