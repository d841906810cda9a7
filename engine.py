"""Analytics coordinator.

``AnalyticsEngine`` is the single owner of every cache and piece of session
state. Analyzer functions run on a bounded thread pool and only return
values; the coordinator thread writes the results back, so caches have one
writer at a time.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from anomalies import AnomalyResult, detect_anomalies, detect_deviation, is_noteworthy
from caches import ExpiringCache
from config import Settings, get_settings
from fingerprints import category_fingerprints, changed_categories, dataset_fingerprint
from forecasting import BudgetForecast, generate_forecasts
from health import FinancialHealthScore, HealthScorer, adjust_incremental
from insights import (
    ANOMALY_TITLE,
    Insight,
    InsightGenerator,
    batch_anomaly_insights,
    category_name_map,
    forecast_insights,
    health_insights,
    high_spending_insights,
    incremental_anomaly_insight,
)
from models import InsightType
from patterns import SpendingPattern, detect_spending_patterns
from periods import Period, resolve_period
from recommendations import HealthRecommendation, generate_recommendations
from schemas import BudgetPlanIn, CategoryIn, TransactionIn, format_currency

logger = logging.getLogger(__name__)

HEALTH_CACHE_KEY = "current"


class AnalysisStatus(str, Enum):
    completed = "completed"
    throttled = "throttled"
    cached = "cached"
    busy = "busy"
    empty = "empty"


@dataclass(frozen=True)
class AnalysisContext:
    period: Optional[Period] = None
    today: Optional[date] = None

    @classmethod
    def for_period(
        cls, period: Optional[str], *, today: Optional[date] = None
    ) -> "AnalysisContext":
        """Context for a period slug such as ``this_month`` or ``2025-03``."""
        return cls(period=resolve_period(period, today=today), today=today)

    @property
    def period_id(self) -> Optional[str]:
        return self.period.slug if self.period else None


@dataclass(frozen=True)
class AnalysisOutcome:
    status: AnalysisStatus
    fingerprint: str = ""
    mode: Optional[str] = None
    insights: list[Insight] = field(default_factory=list)


@dataclass(frozen=True)
class AnalyticsEvent:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class _RunResults:
    patterns: dict[str, SpendingPattern] = field(default_factory=dict)
    anomalies: list[AnomalyResult] = field(default_factory=list)
    forecasts: dict[str, BudgetForecast] = field(default_factory=dict)
    health: Optional[FinancialHealthScore] = None


class AnalyticsEngine:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        sleep: Callable[[float], None] = time.sleep,
        health_scorer: Optional[HealthScorer] = None,
        user_id: Optional[int] = None,
        load_persisted: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        if session_factory is None:
            from database import SessionLocal

            session_factory = SessionLocal
        self._clock = clock
        self._sleep = sleep
        self._scorer = health_scorer or HealthScorer()

        s = self.settings
        self._patterns: ExpiringCache[str, SpendingPattern] = ExpiringCache(
            s.max_cache_size, s.pattern_ttl_secs, clock=clock
        )
        self._forecasts: ExpiringCache[str, BudgetForecast] = ExpiringCache(
            s.max_cache_size, clock=clock
        )
        self._anomalies: ExpiringCache[str, list[AnomalyResult]] = ExpiringCache(
            s.max_cache_size, s.anomaly_ttl_secs, clock=clock
        )
        self._fingerprints: ExpiringCache[str, str] = ExpiringCache(
            s.max_cache_size, clock=clock
        )
        self._health_cache: ExpiringCache[str, FinancialHealthScore] = ExpiringCache(
            1, s.health_ttl_secs, clock=clock
        )
        self._health_score: Optional[FinancialHealthScore] = None

        self._generator = InsightGenerator(
            session_factory,
            max_session_insights=s.max_session_insights,
            retention_days=s.insight_retention_days,
            user_id=user_id,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=s.max_parallel_tasks, thread_name_prefix="analytics"
        )
        self._run_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._subscribers: list[Callable[[AnalyticsEvent], None]] = []
        self._scheduler: Any = None

        self._notifications_enabled = s.insights_enabled
        self._real_time_enabled = True
        self._last_fingerprint = ""
        self._computed_fingerprint = ""
        self._last_run_started_at: Optional[datetime] = None
        self._last_analysis_at: Optional[datetime] = None
        self._analyzed_ids: set[str] = set()
        self._blacklist: set[tuple[str, str]] = set()
        self._pending: dict[str, TransactionIn] = {}
        self._last_data_change_at: Optional[datetime] = None
        self._category_names: dict[str, str] = {}
        self._context = AnalysisContext()

        if load_persisted:
            self._generator.load_persisted()

    # Queryable state

    @property
    def insights(self) -> list[Insight]:
        return self._generator.insights

    @property
    def health_score(self) -> Optional[FinancialHealthScore]:
        return self._health_score

    @property
    def patterns(self) -> dict[str, SpendingPattern]:
        return self._patterns.snapshot()

    @property
    def forecasts(self) -> dict[str, BudgetForecast]:
        return self._forecasts.snapshot()

    @property
    def is_analyzing(self) -> bool:
        return self._run_lock.locked()

    @property
    def last_analysis_at(self) -> Optional[datetime]:
        return self._last_analysis_at

    @property
    def pending_count(self) -> int:
        with self._state_lock:
            return len(self._pending)

    @property
    def notifications_enabled(self) -> bool:
        return self._notifications_enabled

    @notifications_enabled.setter
    def notifications_enabled(self, enabled: bool) -> None:
        self._notifications_enabled = bool(enabled)
        logger.info(f"insight_preference: enabled={self._notifications_enabled}")

    def get_pattern(self, category_id: str) -> Optional[SpendingPattern]:
        return self._patterns.get(category_id)

    def get_forecast(self, category_id: str) -> Optional[BudgetForecast]:
        return self._forecasts.get(category_id)

    def get_anomalies(self, category_id: str) -> list[AnomalyResult]:
        return list(self._anomalies.get(category_id) or [])

    # Events

    def subscribe(
        self, callback: Callable[[AnalyticsEvent], None]
    ) -> Callable[[], None]:
        with self._state_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._state_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, kind: str, **payload: Any) -> None:
        event = AnalyticsEvent(kind, payload)
        with self._state_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(f"subscriber_failed: event={kind}")

    # Full analysis

    def analyze(
        self,
        transactions: Iterable[TransactionIn],
        categories: Iterable[CategoryIn],
        plans: Iterable[BudgetPlanIn],
        context: Optional[AnalysisContext] = None,
        *,
        force: bool = False,
    ) -> AnalysisOutcome:
        txns = list(transactions)
        cats = list(categories)
        budget_plans = list(plans)
        context = context or AnalysisContext()
        known = {c.id for c in cats}
        usable = [t for t in txns if t.category_id is None or t.category_id in known]
        if len(usable) != len(txns):
            logger.debug(
                f"analysis_skip: transactions={len(txns) - len(usable)} "
                "reason=unknown_category"
            )
            txns = usable
        if not txns:
            return AnalysisOutcome(AnalysisStatus.empty)

        fingerprint = dataset_fingerprint(txns, cats, budget_plans)
        now = self._clock()
        if not force and self._is_throttled(fingerprint, now):
            logger.info(f"analysis_skip: reason=throttled fingerprint={fingerprint[:12]}")
            self._publish("analysis_skipped", reason="throttled")
            return AnalysisOutcome(AnalysisStatus.throttled, fingerprint)

        if not self._run_lock.acquire(blocking=False):
            logger.info("analysis_skip: reason=in_flight")
            return AnalysisOutcome(AnalysisStatus.busy, fingerprint)
        try:
            return self._run_full(txns, cats, budget_plans, context, fingerprint, force)
        finally:
            self._run_lock.release()

    def force_analyze(
        self,
        transactions: Iterable[TransactionIn],
        categories: Iterable[CategoryIn],
        plans: Iterable[BudgetPlanIn],
        context: Optional[AnalysisContext] = None,
    ) -> AnalysisOutcome:
        return self.analyze(transactions, categories, plans, context, force=True)

    def _is_throttled(self, fingerprint: str, now: datetime) -> bool:
        if fingerprint != self._last_fingerprint or self._last_run_started_at is None:
            return False
        elapsed = (now - self._last_run_started_at).total_seconds()
        return elapsed < self.settings.min_analysis_interval_secs

    def _can_reuse_cache(
        self, fingerprint: str, category_hashes: dict[str, str]
    ) -> bool:
        # plans and categories only show up in the dataset fingerprint
        if fingerprint != self._computed_fingerprint:
            return False
        if changed_categories(self._fingerprints.snapshot(), category_hashes):
            return False
        return (
            self._health_cache.get(HEALTH_CACHE_KEY) is not None
            and len(self._patterns.snapshot()) > 0
            and len(self._forecasts.snapshot()) > 0
        )

    def _run_full(
        self,
        txns: list[TransactionIn],
        cats: list[CategoryIn],
        plans: list[BudgetPlanIn],
        context: AnalysisContext,
        fingerprint: str,
        force: bool,
    ) -> AnalysisOutcome:
        started_at = self._clock()
        self._last_fingerprint = fingerprint
        self._last_run_started_at = started_at
        self._category_names = category_name_map(cats)
        self._context = context

        category_hashes = category_fingerprints(txns, cats)
        if not force and self._can_reuse_cache(fingerprint, category_hashes):
            self._last_analysis_at = self._clock()
            logger.info("analysis_skip: reason=cache_fresh")
            self._publish("analysis_skipped", reason="cache_fresh")
            return AnalysisOutcome(AnalysisStatus.cached, fingerprint)

        today = context.today or started_at.date()
        batched = len(txns) > self.settings.batch_threshold
        mode = "batched" if batched else "parallel"
        logger.info(
            f"analysis_run: mode={mode} transactions={len(txns)} "
            f"categories={len(cats)} plans={len(plans)} force={force}"
        )
        self._publish("analysis_started", mode=mode, transactions=len(txns))

        if batched:
            results = self._run_batched(txns, cats, plans, today)
        else:
            results = self._run_parallel(txns, cats, plans, today)
            self._apply_results(results, final=True)

        emitted = self._emit_full_run_insights(results, context)
        self._fingerprints.replace_all(category_hashes)
        self._computed_fingerprint = fingerprint
        self._last_analysis_at = self._clock()

        elapsed = (self._last_analysis_at - started_at).total_seconds()
        logger.info(
            f"analysis_done: mode={mode} patterns={len(results.patterns)} "
            f"anomalies={len(results.anomalies)} forecasts={len(results.forecasts)} "
            f"insights={len(emitted)} elapsed_secs={elapsed:.3f}"
        )
        self._publish("analysis_finished", mode=mode, insights=len(emitted))
        return AnalysisOutcome(AnalysisStatus.completed, fingerprint, mode, emitted)

    def _submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        return self._executor.submit(fn, *args, **kwargs)

    def _run_parallel(
        self,
        txns: Sequence[TransactionIn],
        cats: Sequence[CategoryIn],
        plans: Sequence[BudgetPlanIn],
        today: date,
    ) -> _RunResults:
        now = self._clock()
        patterns_f = self._submit(detect_spending_patterns, txns)
        anomalies_f = self._submit(detect_anomalies, txns)
        forecasts_f = self._submit(generate_forecasts, txns, None, today=today)
        health_f = self._submit(self._scorer.compute, txns, plans, cats, now=now)
        return _RunResults(
            patterns=patterns_f.result(),
            anomalies=anomalies_f.result(),
            forecasts=forecasts_f.result(),
            health=health_f.result(),
        )

    def _run_batched(
        self,
        txns: Sequence[TransactionIn],
        cats: Sequence[CategoryIn],
        plans: Sequence[BudgetPlanIn],
        today: date,
    ) -> _RunResults:
        ordered = sorted(txns, key=lambda t: t.timestamp, reverse=True)
        batch_size = self.settings.batch_size
        processed: list[TransactionIn] = []
        combined = _RunResults()

        for start in range(0, len(ordered), batch_size):
            batch = ordered[start : start + batch_size]
            processed.extend(batch)
            snapshot = tuple(processed)
            final = start + batch_size >= len(ordered)

            patterns_f = self._submit(detect_spending_patterns, snapshot)
            anomalies_f = self._submit(detect_anomalies, batch)
            forecasts_f = health_f = None
            if final:
                now = self._clock()
                forecasts_f = self._submit(generate_forecasts, snapshot, None, today=today)
                health_f = self._submit(
                    self._scorer.compute, snapshot, plans, cats, now=now
                )

            step = _RunResults(
                patterns=patterns_f.result(),
                anomalies=anomalies_f.result(),
                forecasts=forecasts_f.result() if forecasts_f else {},
                health=health_f.result() if health_f else None,
            )
            combined.patterns = step.patterns
            combined.anomalies.extend(step.anomalies)
            if final:
                step.anomalies = list(combined.anomalies)
            self._apply_results(step, final=final)
            if final:
                combined.forecasts = step.forecasts
                combined.health = step.health
            logger.debug(
                f"analysis_batch: start={start} size={len(batch)} "
                f"processed={len(processed)} final={final}"
            )
            if not final:
                self._sleep(self.settings.batch_pause_secs)
        return combined

    def _apply_results(self, results: _RunResults, *, final: bool) -> None:
        self._patterns.replace_all(results.patterns)
        if not final:
            return

        by_category: dict[str, list[AnomalyResult]] = defaultdict(list)
        for result in results.anomalies:
            if result.transaction.category_id:
                by_category[result.transaction.category_id].append(result)
        self._anomalies.replace_all(by_category)
        self._forecasts.replace_all(
            {
                cid: replace(forecast, based_on_pattern=results.patterns.get(cid))
                for cid, forecast in results.forecasts.items()
            }
        )
        if results.health is not None:
            self._set_health_score(results.health)

    def _set_health_score(self, score: FinancialHealthScore) -> None:
        self._health_score = score
        self._health_cache.set(HEALTH_CACHE_KEY, score)
        self._publish("health_score_updated", overall_score=score.overall_score)

    def _emit_full_run_insights(
        self, results: _RunResults, context: AnalysisContext
    ) -> list[Insight]:
        if not self._notifications_enabled:
            logger.info("insight_skip: reason=disabled")
            return []
        now = self._clock()
        period_id = context.period_id
        candidates = (
            health_insights(self._health_score, period_id=period_id, now=now)
            + forecast_insights(
                self._forecasts.snapshot(),
                self._category_names,
                period_id=period_id,
                now=now,
            )
            + batch_anomaly_insights(results.anomalies, period_id=period_id, now=now)
        )
        emitted = self._generator.emit(candidates)
        if emitted:
            self._publish("insights_changed", added=len(emitted))
        return emitted

    # Incremental path

    def enable_real_time_updates(self, enabled: bool) -> None:
        self._real_time_enabled = bool(enabled)
        logger.info(f"real_time_updates: enabled={self._real_time_enabled}")

    def notify_new_transactions(
        self, transactions: Iterable[TransactionIn]
    ) -> list[Insight]:
        if not self._real_time_enabled:
            return []
        now = self._clock()
        with self._state_lock:
            fresh = [
                t
                for t in transactions
                if t.id not in self._analyzed_ids and t.id not in self._pending
            ]
            if not fresh:
                return []
            for txn in fresh:
                self._pending[txn.id] = txn
            self._last_data_change_at = now
        logger.info(f"incremental_notify: new={len(fresh)}")
        return self._perform_incremental_update()

    def run_auto_refresh(self) -> list[Insight]:
        """Timer entry point: drain pending items if data changed recently."""
        if not self._real_time_enabled:
            return []
        now = self._clock()
        with self._state_lock:
            last_change = self._last_data_change_at
            has_pending = bool(self._pending)
        if last_change is None or not has_pending:
            return []
        if (now - last_change).total_seconds() >= self.settings.recent_change_window_secs:
            return []
        return self._perform_incremental_update()

    def _perform_incremental_update(self) -> list[Insight]:
        if not self._run_lock.acquire(blocking=False):
            logger.info("incremental_skip: reason=in_flight")
            return []
        try:
            with self._state_lock:
                batch = list(self._pending.values())
                self._pending.clear()
            if not batch:
                return []
            emitted = self._analyze_new_transactions(batch)
            self._last_analysis_at = self._clock()
            return emitted
        finally:
            self._run_lock.release()

    def _analyze_new_transactions(self, batch: list[TransactionIn]) -> list[Insight]:
        now = self._clock()
        period_id = self._context.period_id
        candidates: list[Insight] = []
        for txn in batch:
            candidate = self._check_new_transaction(txn, period_id, now)
            if candidate is not None:
                candidates.append(candidate)

        if len(batch) >= 3 and self._health_score is not None:
            self._set_health_score(adjust_incremental(self._health_score, batch, now=now))

        candidates.extend(
            high_spending_insights(
                batch, self._category_names, period_id=period_id, now=now
            )
        )
        if not self._notifications_enabled:
            return []
        emitted = self._generator.emit(candidates)
        if emitted:
            self._publish("insights_changed", added=len(emitted))
        logger.info(f"incremental_done: transactions={len(batch)} insights={len(emitted)}")
        return emitted

    def _check_new_transaction(
        self, txn: TransactionIn, period_id: Optional[str], now: datetime
    ) -> Optional[Insight]:
        category_id = txn.category_id
        if not category_id:
            return None
        pattern = self._patterns.get(category_id)
        if pattern is None:
            logger.debug(f"incremental_skip: transaction={txn.id} reason=no_pattern")
            return None
        with self._state_lock:
            if txn.id in self._analyzed_ids:
                return None
            if (category_id, ANOMALY_TITLE) in self._blacklist:
                return None
            self._analyzed_ids.add(txn.id)

        result = detect_deviation(txn, pattern)
        if not is_noteworthy(result):
            return None
        amount_text = format_currency(txn.amount)
        if self._generator.has_session_insight(
            lambda i: i.type == InsightType.anomaly
            and i.related_category_id == category_id
            and amount_text in i.description
        ):
            return None
        name = self._category_names.get(category_id, "Unknown")
        return incremental_anomaly_insight(result, name, period_id=period_id, now=now)

    # Insight management

    def mark_insight_read(self, insight_id: str) -> bool:
        updated = self._generator.mark_read(insight_id)
        if updated:
            self._publish("insights_changed", read=insight_id)
        return updated

    def clear_insights(self) -> list[Insight]:
        dismissed = self._generator.dismiss_all()
        with self._state_lock:
            for insight in dismissed:
                if insight.related_category_id:
                    self._blacklist.add((insight.related_category_id, insight.title))
        if dismissed:
            self._publish("insights_changed", dismissed=len(dismissed))
        return dismissed

    def is_blacklisted(self, category_id: str, title: str) -> bool:
        with self._state_lock:
            return (category_id, title) in self._blacklist

    def clear_old_insights(self) -> int:
        removed = self._generator.clear_old(self._clock())
        if removed:
            self._publish("insights_changed", removed=removed)
        return removed

    def reset_analysis_state(self) -> None:
        with self._state_lock:
            self._analyzed_ids.clear()
            self._blacklist.clear()
        logger.info("analysis_state_reset")

    def generate_recommendations(
        self,
        health_score: FinancialHealthScore,
        transactions: Sequence[TransactionIn],
        categories: Sequence[CategoryIn],
    ) -> list[HealthRecommendation]:
        return generate_recommendations(
            health_score, transactions, categories, today=self._clock().date()
        )

    # Maintenance

    def run_periodic_cleanup(self) -> dict[str, int]:
        purged = {
            "patterns": self._patterns.purge_expired(),
            "anomalies": self._anomalies.purge_expired(),
            "health": self._health_cache.purge_expired(),
            "insights": self.clear_old_insights(),
        }
        logger.info(
            "cache_cleanup: "
            + " ".join(f"{name}={count}" for name, count in purged.items())
        )
        return purged

    def handle_memory_pressure(self) -> None:
        self._anomalies.clear()
        self._fingerprints.clear()
        self._patterns.purge_expired()
        self._forecasts.purge_expired()
        self._health_cache.purge_expired()
        logger.info(
            f"memory_pressure: patterns={len(self._patterns)} "
            f"forecasts={len(self._forecasts)} health_cached={len(self._health_cache)}"
        )

    def attach_scheduler(self, scheduler: Any) -> None:
        """Register a scheduler whose ``stop()`` runs on shutdown."""
        self._scheduler = scheduler

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
        self._executor.shutdown(wait=True)
        logger.info("analytics_engine_stopped")
