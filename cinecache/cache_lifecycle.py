from __future__ import annotations

"""
cinecache/cache_lifecycle.py

Cache Lifecycle Manager: barrido de expirados, estadísticas, optimización y health,
independiente del tráfico de requests.

🧠 Principios
-------------
1) Objeto explícito con estado (STOPPED | RUNNING):
   - Se construye con su store (y el servicio para el preload) y se inyecta.
   - start() / stop() son idempotentes.

2) Scheduler propio (hilo daemon):
   - Barrido inicial tras CACHE_INITIAL_SWEEP_DELAY_SECONDS (deja establecer la conexión).
   - Barrido diario a CACHE_DAILY_SWEEP_HOUR:00 (hora local) + log de estadísticas.
   - Log de estadísticas cada 6h.
   - Ningún job bloquea el read path; un job que falla se loguea y el scheduler sigue.

3) Sin coordinación entre procesos:
   - Si hay varias réplicas, solo una debería arrancar el scheduler
     (CACHE_SCHEDULER_ENABLED=false en el resto).

4) Dos políticas de evicción distintas (se mantienen ambas):
   - TTL: cache_expires_at <= now.
   - Frías: last_searched_at hace > 30 días Y total_search_count <= 1 (frescos o no).
"""

import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from cinecache import logger as logger
from cinecache.config_lifecycle import (
    CACHE_DAILY_SWEEP_HOUR,
    CACHE_INITIAL_SWEEP_DELAY_SECONDS,
    CACHE_STATS_INTERVAL_SECONDS,
    GENRE_DISTRIBUTION_LIMIT,
    HEALTH_MAX_EXPIRED_RATIO,
    HEALTH_MAX_STALE_RATIO,
    HEALTH_MIN_EFFICIENCY_PCT,
    OPTIMIZE_COLD_AGE_SECONDS,
    OPTIMIZE_COLD_MAX_SEARCHES,
    PRELOAD_DELAY_SECONDS,
    PRELOAD_POPULAR_TERMS,
    RECENT_WINDOW_SECONDS,
    STALE_UNUSED_AGE_SECONDS,
    TOP_SEARCHED_LIMIT,
)
from cinecache.movie_record import expired_clause, fresh_clause
from cinecache.movie_store import MovieStore, StoreUnavailableError

if TYPE_CHECKING:
    from cinecache.cache_fetch import MovieCacheService

LifecycleState = Literal["STOPPED", "RUNNING"]
HealthStatus = Literal["excellent", "healthy", "warning", "error"]


@dataclass(frozen=True)
class CacheStatistics:
    total: int
    active: int
    expired: int
    recently_added: int
    stale_unused: int
    top_searched: list[dict[str, Any]] = field(default_factory=list)
    genre_distribution: list[dict[str, Any]] = field(default_factory=list)

    @property
    def cache_efficiency(self) -> float:
        """Porcentaje de registros frescos (0 si el store está vacío)."""
        if self.total <= 0:
            return 0.0
        return round(self.active / self.total * 100.0, 2)

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalMovies": self.total,
            "activeMovies": self.active,
            "expiredMovies": self.expired,
            "recentMovies": self.recently_added,
            "staleUnused": self.stale_unused,
            "topSearched": list(self.top_searched),
            "genreDistribution": list(self.genre_distribution),
            "cacheEfficiency": self.cache_efficiency,
        }


def classify_health(stats: CacheStatistics) -> dict[str, Any]:
    """
    - warning: eficiencia < 70% o expirados > 0.3 * activos.
    - stale_unused > 0.2 * total: se lista como issue pero NO degrada el status.
    - excellent: sin issues; healthy: solo issues que no degradan (stale_unused).
    """
    status: HealthStatus = "healthy"
    issues: list[str] = []
    recommendations: list[str] = []

    if stats.cache_efficiency < HEALTH_MIN_EFFICIENCY_PCT:
        status = "warning"
        issues.append(f"Low cache efficiency: {stats.cache_efficiency}%")
        recommendations.append("Run cache cleanup to improve efficiency")

    if stats.expired > stats.active * HEALTH_MAX_EXPIRED_RATIO:
        status = "warning"
        issues.append(f"High number of expired entries: {stats.expired}")
        recommendations.append("Schedule more frequent cache cleanups")

    if stats.stale_unused > stats.total * HEALTH_MAX_STALE_RATIO:
        issues.append(f"Many old unused entries: {stats.stale_unused}")
        recommendations.append("Consider removing old unused movie data")

    out: dict[str, Any] = {"status": status, "issues": issues, "recommendations": recommendations}
    if not issues:
        out["status"] = "excellent"
        out["message"] = "Cache is operating optimally"
    return out


def seconds_until_hour(now_local: datetime, hour: int) -> float:
    """Segundos hasta la próxima hh:00 local (si ya pasó hoy, mañana)."""
    target = now_local.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now_local:
        target += timedelta(days=1)
    return (target - now_local).total_seconds()


# ============================================================
# Scheduler
# ============================================================


@dataclass
class _Job:
    name: str
    func: Callable[[], Any]
    due: float
    next_delay: Callable[[], float | None]


class CacheLifecycleManager:
    def __init__(
        self,
        store: MovieStore,
        service: "MovieCacheService | None" = None,
        *,
        initial_delay_seconds: float = CACHE_INITIAL_SWEEP_DELAY_SECONDS,
        daily_sweep_hour: int = CACHE_DAILY_SWEEP_HOUR,
        stats_interval_seconds: float = CACHE_STATS_INTERVAL_SECONDS,
        local_clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._service = service
        self._initial_delay = max(0.0, float(initial_delay_seconds))
        self._daily_hour = int(daily_sweep_hour)
        self._stats_interval = max(1.0, float(stats_interval_seconds))
        self._local_clock = local_clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._state: LifecycleState = "STOPPED"
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    # ------------------------------------------------------------
    # Operaciones on-demand
    # ------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Borra registros con cache_expires_at <= now. Idempotente."""
        deleted = self._store.delete_expired()
        logger.debug_ctx("LIFECYCLE", f"sweep_expired deleted={deleted}")
        return deleted

    def compute_statistics(self) -> CacheStatistics:
        """Agregación de solo lectura."""
        now = self._store.now()
        top = self._store.top_searched(TOP_SEARCHED_LIMIT)
        genres = self._store.aggregate(
            [
                {"$match": fresh_clause(now)},
                {"$unwind": "$genres"},
                {"$group": {"_id": "$genres", "count": {"$sum": 1}}},
                {"$sort": {"count": DESCENDING}},
                {"$limit": GENRE_DISTRIBUTION_LIMIT},
            ]
        )
        return CacheStatistics(
            total=self._store.count(),
            active=self._store.count(fresh_clause(now)),
            expired=self._store.count(expired_clause(now)),
            recently_added=self._store.count(
                {"last_fetched_at": {"$gte": now - timedelta(seconds=RECENT_WINDOW_SECONDS)}}
            ),
            stale_unused=self._store.count(
                {"last_fetched_at": {"$lte": now - timedelta(seconds=STALE_UNUSED_AGE_SECONDS)}}
            ),
            top_searched=[
                {
                    "externalId": row.get("external_id"),
                    "title": row.get("title"),
                    "totalSearchCount": row.get("total_search_count", 0),
                    "lastSearchedAt": row.get("last_searched_at"),
                }
                for row in top
            ],
            genre_distribution=[{"genre": row["_id"], "count": row["count"]} for row in genres],
        )

    def optimize(self) -> dict[str, Any]:
        """Barrido TTL y, después, evicción de registros fríos (buscados una vez hace > 30 días)."""
        start = time.monotonic()
        expired_removed = self.sweep_expired()
        cold_removed = self._store.delete_cold(
            older_than=timedelta(seconds=OPTIMIZE_COLD_AGE_SECONDS),
            max_searches=OPTIMIZE_COLD_MAX_SEARCHES,
        )
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"[LIFECYCLE] optimize done in {duration_ms}ms: expired={expired_removed} cold={cold_removed}"
        )
        return {
            "expiredRemoved": expired_removed,
            "staleUnusedRemoved": cold_removed,
            "durationMs": duration_ms,
        }

    def health_report(self) -> dict[str, Any]:
        generated_at = self._store.now()
        try:
            stats = self.compute_statistics()
        except (StoreUnavailableError, PyMongoError) as exc:
            logger.error(f"[LIFECYCLE] health report failed: {exc!r}", always=True)
            return {
                "status": "error",
                "issues": [],
                "recommendations": [],
                "message": str(exc),
                "generatedAt": generated_at,
            }

        report = classify_health(stats)
        report["stats"] = stats.as_dict()
        report["generatedAt"] = generated_at
        return report

    def log_statistics(self) -> CacheStatistics:
        stats = self.compute_statistics()
        top_genres = ", ".join(f"{g['genre']} ({g['count']})" for g in stats.genre_distribution[:3])
        logger.info(
            "[LIFECYCLE] stats "
            f"total={stats.total} active={stats.active} expired={stats.expired} "
            f"efficiency={stats.cache_efficiency}% recent24h={stats.recently_added} "
            f"top_genres=[{top_genres}]"
        )
        return stats

    def preload_popular(self, terms: Sequence[str] = PRELOAD_POPULAR_TERMS) -> dict[str, Any]:
        """
        Calienta la caché para una lista fija de términos populares.
        Pausa PRELOAD_DELAY_SECONDS entre términos (rate limit OMDb).
        """
        if self._service is None:
            raise RuntimeError("preload_popular requires a MovieCacheService")

        loaded: list[str] = []
        failed: dict[str, str] = {}
        for idx, term in enumerate(terms):
            if idx > 0:
                self._sleep(PRELOAD_DELAY_SECONDS)
            outcome = self._service.search_and_cache(term, force_refresh=False)
            if outcome.ok:
                loaded.append(term)
                logger.debug_ctx("LIFECYCLE", f"preloaded {term!r} source={outcome.source} items={outcome.total_count}")
            else:
                reason = outcome.failure.message if outcome.failure else "unknown"
                failed[term] = reason
                logger.warning(f"[LIFECYCLE] preload failed for {term!r}: {reason}")

        logger.info(f"[LIFECYCLE] preload done: ok={len(loaded)} failed={len(failed)}")
        return {"loaded": loaded, "failed": failed}

    # ------------------------------------------------------------
    # Jobs programados (nunca propagan)
    # ------------------------------------------------------------

    def _initial_sweep(self) -> None:
        stats = self.compute_statistics()
        logger.info(f"[LIFECYCLE] cache status: {stats.active} active, {stats.expired} expired")
        if stats.expired > 0:
            deleted = self.sweep_expired()
            logger.info(f"[LIFECYCLE] cleaned {deleted} expired entries on startup")

    def _daily_sweep(self) -> None:
        start = time.monotonic()
        deleted = self.sweep_expired()
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[LIFECYCLE] scheduled cleanup: {deleted} entries deleted in {duration_ms}ms")
        self.log_statistics()

    def _run_job(self, job: _Job) -> None:
        try:
            job.func()
        except Exception as exc:  # noqa: BLE001
            logger.error(f"[LIFECYCLE] job {job.name!r} failed: {exc!r}", always=True)

    def _build_jobs(self, now_mono: float) -> list[_Job]:
        def until_daily() -> float:
            return seconds_until_hour(self._local_clock(), self._daily_hour)

        return [
            _Job("initial_sweep", self._initial_sweep, now_mono + self._initial_delay, lambda: None),
            _Job("daily_sweep", self._daily_sweep, now_mono + until_daily(), until_daily),
            _Job(
                "stats_log",
                self.log_statistics,
                now_mono + self._stats_interval,
                lambda: self._stats_interval,
            ),
        ]

    def _scheduler_loop(self) -> None:
        jobs = self._build_jobs(time.monotonic())
        while jobs and not self._stop_event.is_set():
            job = min(jobs, key=lambda j: j.due)
            wait_s = job.due - time.monotonic()
            if wait_s > 0 and self._stop_event.wait(wait_s):
                break

            self._run_job(job)

            delay = job.next_delay()
            if delay is None:
                jobs.remove(job)
            else:
                job.due = time.monotonic() + delay

    # ------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._state == "RUNNING":
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._scheduler_loop,
                name="cinecache-lifecycle",
                daemon=True,
            )
            self._thread.start()
            self._state = "RUNNING"
        logger.info(
            "[LIFECYCLE] scheduler started "
            f"(initial sweep in {self._initial_delay:g}s, daily at {self._daily_hour:02d}:00, "
            f"stats every {self._stats_interval / 3600:g}h)"
        )

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if self._state == "STOPPED":
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._state = "STOPPED"

        if thread is not None:
            thread.join(timeout=timeout)
        logger.info("[LIFECYCLE] scheduler stopped")
