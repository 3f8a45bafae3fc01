#!/usr/bin/env python3
import os
import sys
import json
import asyncio
import logging
import signal
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from zoneinfo import ZoneInfo

from campus_curator.models.content import CuratedItem
from campus_curator.models.settings import CurationSettings
from campus_curator.services.ai_service import AIService
from campus_curator.services.content_store import ContentStore
from campus_curator.services.news_api import NewsAPIService
from campus_curator.services.relevance_filter import RelevanceFilter
from campus_curator.services.scoring_selector import ScoringSelector
from campus_curator.services.source_ranking_service import SourceRankingService
from campus_curator.services.ttl_cache import TTLCache
from campus_curator.pipeline.category_curator import CURATION_CACHE_PREFIX, CategoryCurator
from campus_curator.pipeline.engagement_reranker import EngagementReranker
from campus_curator.pipeline.feed_generator import FeedGenerator
from campus_curator.pipeline.retention_curator import RetentionCurator
from campus_curator.utils.error_monitoring import CriticalError, ErrorCategory, ErrorHandler
from campus_curator.utils.logging_config import PerformanceTracker, log_pipeline_metrics, setup_logging


@dataclass
class PipelineConfig:
    """Pipeline configuration"""
    # API Keys
    news_api_key: str
    gemini_api_key: str

    # Paths
    database_path: str = "data/campus_curator.db"
    log_dir: str = "logs"
    log_level: str = "INFO"

    # Timing (America/Chicago)
    curation_hour: int = 6
    max_execution_minutes: int = 30

    # Features
    dry_run: bool = False

    settings: CurationSettings = field(default_factory=CurationSettings)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            news_api_key=os.getenv('NEWS_API_KEY', ''),
            gemini_api_key=os.getenv('GEMINI_API_KEY', ''),
            database_path=os.getenv('DATABASE_PATH', 'data/campus_curator.db'),
            log_dir=os.getenv('LOG_DIR', 'logs'),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            curation_hour=int(os.getenv('CURATION_HOUR', '6')),
            max_execution_minutes=int(os.getenv('MAX_EXECUTION_MINUTES', '30')),
            dry_run=(os.getenv('DRY_RUN', 'false').lower() == 'true'),
            settings=CurationSettings.from_env(),
        )


@dataclass
class PipelineMetrics:
    """Execution metrics"""
    start_time: datetime
    end_time: Optional[datetime] = None

    # Stage timings (seconds)
    fetch_time: float = 0.0
    filter_time: float = 0.0
    select_time: float = 0.0
    retention_time: float = 0.0
    save_time: float = 0.0
    evict_time: float = 0.0

    # Counts
    items_fetched: int = 0
    items_after_filter: int = 0
    items_selected: int = 0
    items_backfilled: int = 0
    items_saved: int = 0
    duplicates_skipped: int = 0
    items_failed: int = 0
    items_evicted: int = 0
    shortfall: int = 0

    selection_method: Optional[str] = None
    aborted_stage: Optional[str] = None

    def total_time(self) -> float:
        """Calculate total execution time"""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0


class PipelineError(Exception):
    """Custom exception for pipeline failures"""
    pass


class MainPipeline:
    """
    Orchestrates the daily curation run and the background maintenance jobs.
    """

    def __init__(self, config: Optional[PipelineConfig] = None, services: Optional[Dict[str, Any]] = None):
        self.config = config or PipelineConfig.from_env()
        self.settings = self.config.settings
        self.metrics: Optional[PipelineMetrics] = None
        self.services: Dict[str, Any] = dict(services or {})
        self._initialized = False
        self.error_handler = self.services.get('error_handler') or ErrorHandler()
        self.logger = logging.getLogger(__name__)

        self.local_timezone = ZoneInfo('America/Chicago')

        # Graceful shutdown
        self.shutdown_event = asyncio.Event()
        try:
            signal.signal(signal.SIGINT, self._handle_shutdown)
            signal.signal(signal.SIGTERM, self._handle_shutdown)
        except ValueError:
            # Not on the main thread
            pass

    async def initialize_services(self) -> Dict[str, Any]:
        """
        Wire every component. Anything already present in ``self.services`` is kept.
        """
        cfg = self.config
        services = self.services

        if 'store' not in services:
            Path(cfg.database_path).parent.mkdir(parents=True, exist_ok=True)
            store = ContentStore(db_path=cfg.database_path)
            await store.initialize_db()
            services['store'] = store

        if 'news_api' not in services:
            if not cfg.news_api_key:
                raise PipelineError("Missing NEWS_API_KEY")
            services['news_api'] = NewsAPIService(api_key=cfg.news_api_key, settings=self.settings)

        if 'ai' not in services:
            services['ai'] = build_ai_service(cfg, self.settings)

        factories = (
            ('cache', lambda: TTLCache(sweep_interval=self.settings.cache_sweep_interval)),
            ('relevance_filter', lambda: RelevanceFilter(settings=self.settings)),
            ('source_ranking', SourceRankingService),
            ('selector', lambda: ScoringSelector(
                ai_service=services['ai'],
                source_ranking=services['source_ranking'],
                settings=self.settings,
            )),
            ('retention', lambda: RetentionCurator(
                services['store'], services['selector'], settings=self.settings, error_handler=self.error_handler
            )),
            ('reranker', lambda: EngagementReranker(services['store'], settings=self.settings)),
            ('category_curator', lambda: CategoryCurator(
                services['store'], services['selector'], cache=services['cache'],
                settings=self.settings, error_handler=self.error_handler,
            )),
            ('feed_generator', lambda: FeedGenerator(
                services['store'], cache=services['cache'], settings=self.settings
            )),
        )
        for name, factory in factories:
            if name not in services:
                services[name] = factory()
        self._initialized = True
        return services

    async def run_daily_pipeline(self) -> bool:
        """
        Execute the curation run under the execution time limit.

        Returns False when the run was aborted by a fatal error or timed out;
        stored content is left as it was.
        """
        self.metrics = PipelineMetrics(start_time=datetime.now(timezone.utc))
        try:
            await asyncio.wait_for(self.run_curation_pipeline(), timeout=self.config.max_execution_minutes * 60)
            return True
        except CriticalError as e:
            await self._handle_failure("curation", e)
            return False
        except asyncio.TimeoutError as e:
            await self._handle_failure("curation", e, category=ErrorCategory.FATAL)
            return False
        finally:
            if self.metrics:
                self.metrics.end_time = datetime.now(timezone.utc)
            news_api = self.services.get('news_api')
            if news_api is not None and hasattr(news_api, 'close_session'):
                await news_api.close_session()

    async def run_curation_pipeline(self) -> List[CuratedItem]:
        """
        fetch → filter → select → ensure count → save → evict → invalidate cache.

        Any stage that yields nothing ends the run before the store is touched.
        """
        if self.metrics is None:
            self.metrics = PipelineMetrics(start_time=datetime.now(timezone.utc))
        if not self._initialized:
            await self.initialize_services()
        metrics = self.metrics
        services = self.services

        # Stage 1: Fetch
        with PerformanceTracker("fetch", self.logger) as tracker:
            raw = await services['news_api'].fetch_latest_articles()
        metrics.fetch_time = tracker.duration_ms / 1000
        metrics.items_fetched = len(raw)
        log_pipeline_metrics(self.logger, "fetch", 0, len(raw), tracker.duration_ms)
        if not raw:
            return self._abort("fetch")

        # Stage 2: Filter
        with PerformanceTracker("filter", self.logger) as tracker:
            pool = services['relevance_filter'].filter_articles(raw)
        metrics.filter_time = tracker.duration_ms / 1000
        metrics.items_after_filter = len(pool)
        log_pipeline_metrics(self.logger, "filter", len(raw), len(pool), tracker.duration_ms)
        if not pool:
            return self._abort("filter")

        # Stage 3: Select
        selector: ScoringSelector = services['selector']
        with PerformanceTracker("select", self.logger) as tracker:
            selected = await selector.select_best(pool, self.settings.target_articles)
        metrics.select_time = tracker.duration_ms / 1000
        metrics.items_selected = len(selected)
        metrics.selection_method = selector.last_method
        log_pipeline_metrics(
            self.logger, "select", len(pool), len(selected), tracker.duration_ms, method=selector.last_method
        )
        if not selected:
            return self._abort("select")

        # Stage 4: Ensure target count
        retention: RetentionCurator = services['retention']
        with PerformanceTracker("ensure_target_count", self.logger) as tracker:
            result = await retention.ensure_target_count(selected)
        metrics.retention_time = tracker.duration_ms / 1000
        metrics.items_backfilled = sum(result.tiers_used.values())
        metrics.shortfall = result.shortfall
        log_pipeline_metrics(
            self.logger, "ensure_target_count", len(selected), len(result.items), tracker.duration_ms,
            tiers_used=result.tiers_used,
        )

        if self.config.dry_run:
            self.logger.info(f"🧪 Dry run: would save {len(result.items)} items, skipping store writes")
            return result.items

        # Stage 5: Save
        with PerformanceTracker("save", self.logger) as tracker:
            saved, duplicates, failed = await retention.save_batch(result.items)
        metrics.save_time = tracker.duration_ms / 1000
        metrics.items_saved = len(saved)
        metrics.duplicates_skipped = duplicates
        metrics.items_failed = failed
        log_pipeline_metrics(
            self.logger, "save", len(result.items), len(saved), tracker.duration_ms,
            duplicates=duplicates, failed=failed,
        )

        # Stage 6: Evict, only once the save stored something
        if not RetentionCurator.save_succeeded(saved, failed):
            self.logger.warning(f"⚠️ Save stored nothing ({failed} failed), skipping eviction")
            return self._abort("save")

        with PerformanceTracker("evict", self.logger) as tracker:
            evicted = await retention.evict_expired()
        metrics.evict_time = tracker.duration_ms / 1000
        metrics.items_evicted = sum(evicted.values())

        # Stage 7: Invalidate curation cache
        cache: TTLCache = services['cache']
        removed = cache.invalidate_pattern(CURATION_CACHE_PREFIX)
        self.logger.info(
            f"✅ Curation run complete: {len(saved)} saved, {duplicates} duplicates, "
            f"{metrics.items_evicted} evicted, {removed} cache entries invalidated"
        )
        return saved

    def _abort(self, stage: str) -> List[CuratedItem]:
        self.metrics.aborted_stage = stage
        self.logger.warning(f"⚠️ Stage '{stage}' produced no items, ending the run early")
        return []

    async def run_rerank(self, force: bool = False):
        if not self._initialized:
            await self.initialize_services()
        return await self.services['reranker'].update_rankings(force=force)

    async def run_category_curation(self):
        if not self._initialized:
            await self.initialize_services()
        return await self.services['category_curator'].curate_featured_content()

    async def _handle_failure(
        self,
        stage: str,
        error: Exception,
        category: Optional[ErrorCategory] = None
    ) -> None:
        self.logger.error(f"❌ Failure in stage {stage}: {error}", exc_info=True)
        self.error_handler.handle_error(error, service='pipeline', operation=stage, category=category)

    def _handle_shutdown(self, signum, frame) -> None:  # noqa: ANN001
        self.shutdown_event.set()

    async def schedule_daily_execution(self) -> None:
        """Daily curation at ``curation_hour`` local time, plus rerank timer and cache sweeper."""
        if not self._initialized:
            await self.initialize_services()
        cache: TTLCache = self.services['cache']
        cache.start_sweeper()
        rerank_task = asyncio.create_task(self.services['reranker'].run_periodically(self.shutdown_event))

        try:
            while not self.shutdown_event.is_set():
                await self._wait_until_execution_time()
                if self.shutdown_event.is_set():
                    break
                # Run pipeline as background task so we can cancel on shutdown
                pipeline_task = asyncio.create_task(self.run_daily_pipeline())
                shutdown_wait = asyncio.create_task(self.shutdown_event.wait())
                try:
                    done, _ = await asyncio.wait({pipeline_task, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED)
                    if shutdown_wait in done and not pipeline_task.done():
                        pipeline_task.cancel()
                        await asyncio.gather(pipeline_task, return_exceptions=True)
                        break
                    if pipeline_task in done:
                        try:
                            pipeline_task.result()
                        except Exception as e:  # noqa: BLE001
                            await self._handle_failure("run", e)
                finally:
                    for t in (pipeline_task, shutdown_wait):
                        if not t.done():
                            t.cancel()
                    await asyncio.gather(pipeline_task, shutdown_wait, return_exceptions=True)
        finally:
            self.shutdown_event.set()
            await asyncio.gather(rerank_task, return_exceptions=True)
            await cache.stop_sweeper()

    async def _wait_until_execution_time(self) -> None:
        next_run = self._calculate_next_run_time()
        self.logger.info(f"⏰ Next curation run at {next_run:%Y-%m-%d %H:%M %Z}")
        while not self.shutdown_event.is_set():
            delay = (next_run - datetime.now(self.local_timezone)).total_seconds()
            if delay <= 0:
                break
            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=min(delay, 1.0))
            except asyncio.TimeoutError:
                continue

    def _calculate_next_run_time(self, now: Optional[datetime] = None) -> datetime:
        now_local = now.astimezone(self.local_timezone) if now else datetime.now(self.local_timezone)
        next_run = now_local.replace(hour=self.config.curation_hour, minute=0, second=0, microsecond=0)
        if next_run <= now_local:
            next_run = (now_local + timedelta(days=1)).replace(
                hour=self.config.curation_hour, minute=0, second=0, microsecond=0
            )
        return next_run

    def get_metrics(self) -> Optional[PipelineMetrics]:
        return self.metrics

    async def health_check(self) -> Dict[str, bool]:
        if not self._initialized:
            await self.initialize_services()
        results: Dict[str, bool] = {}

        ai = self.services.get('ai')
        results['ai'] = bool(ai and await ai.test_connection())

        try:
            await self.services['store'].get_statistics()
            results['store'] = True
        except Exception as e:  # noqa: BLE001
            self.logger.error(f"❌ Store health check failed: {e}")
            results['store'] = False
        return results


def build_ai_service(config: PipelineConfig, settings: CurationSettings) -> Optional[AIService]:
    """Gemini client, or None so selection uses the deterministic scorer."""
    if not config.gemini_api_key:
        logging.getLogger(__name__).warning("⚠️ GEMINI_API_KEY not set, AI ranking disabled")
        return None
    return AIService(api_key=config.gemini_api_key, base_delay=settings.ai_base_delay)


async def handle_store_commands(args, config: PipelineConfig) -> None:
    """Commands that only need the content store (and optionally the AI ranker)."""
    store = ContentStore(config.database_path)
    await store.initialize_db()
    pipeline = MainPipeline(config, services={'store': store, 'news_api': None})
    await pipeline.initialize_services()

    if args.store_stats:
        stats = await store.get_statistics()
        print("📊 Store Statistics")
        print("=" * 50)
        print(f"Total news items: {stats['total_news']}")
        for status, count in stats['news_by_status'].items():
            print(f"  {status}: {count}")
        if stats['news_by_category']:
            print("\nApproved items by category:")
            for category, count in stats['news_by_category'].items():
                print(f"  {category}: {count}")
        if stats.get('date_range'):
            print(f"\nOldest: {stats['date_range']['oldest']}")
            print(f"Newest: {stats['date_range']['newest']}")
        print(f"\nEvents: {stats['events']}")
        print(f"Social posts: {stats['social_posts']}")

    if args.rerank:
        result = await pipeline.run_rerank(force=args.force)
        if result is None:
            print("⏳ Rerank skipped (throttled)")
        else:
            print(f"✅ Reranked {len(result.ranked_ids)} items")
            print(f"   Featured: {result.featured_ids}")
            print(f"   Trending: {result.trending_ids}")

    if args.curate_categories:
        rankings = await pipeline.run_category_curation()
        for name, ranking in rankings.items():
            if ranking.error:
                print(f"❌ {name}: {ranking.error}")
            else:
                print(f"✅ {name}: {len(ranking.top)} ranked by {ranking.method}")
        print(json.dumps(pipeline.error_handler.get_error_statistics(), indent=2, default=str))


async def main():
    """Main entry point"""
    import argparse
    parser = argparse.ArgumentParser(description="Campus Curator content pipeline")
    parser.add_argument('--once', action='store_true', help='Run the curation pipeline once')
    parser.add_argument('--dry-run', action='store_true', help='Select items without writing to the store')
    parser.add_argument('--health', action='store_true', help='Health check only')
    parser.add_argument('--rerank', action='store_true', help='Recompute featured/trending flags')
    parser.add_argument('--force', action='store_true', help='Ignore the rerank throttle')
    parser.add_argument('--curate-categories', action='store_true', help='Rank top items of every category')
    parser.add_argument('--store-stats', action='store_true', help='Show store statistics')
    args = parser.parse_args()

    config = PipelineConfig.from_env()
    config.dry_run = config.dry_run or args.dry_run
    setup_logging(log_level=config.log_level, log_dir=config.log_dir)

    try:
        if args.store_stats or args.rerank or args.curate_categories:
            await handle_store_commands(args, config)
            return

        pipeline = MainPipeline(config)
        if args.health:
            health = await pipeline.health_check()
            print("Service Health Status:")
            for service, status in health.items():
                print(f"  {service}: {'✅' if status else '❌'}")
            return
        elif args.once:
            print("Running curation pipeline once...")
            success = await pipeline.run_daily_pipeline()
            if success:
                print("✅ Pipeline completed successfully!")
                metrics = pipeline.get_metrics()
                if metrics:
                    print(f"Total time: {metrics.total_time():.2f}s")
                    print(f"Items saved: {metrics.items_saved}")
            else:
                print("❌ Pipeline failed!")
                sys.exit(1)
        else:
            print("Starting daily scheduler...")
            print(f"Will run daily at {config.curation_hour:02d}:00 America/Chicago")
            await pipeline.schedule_daily_execution()
    except KeyboardInterrupt:
        print("\n⚠️ Shutting down gracefully...")
    except Exception as e:  # noqa: BLE001
        print(f"❌ Fatal error: {e}")
        logging.exception("Fatal error in main")
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
