"""
Videomix backend service: mix generation API.

Startup order matters:
1. Persistence, registry and ledger are built
2. The restart sweep fails jobs a previous process left PROCESSING
3. The orchestrator starts dispatching (including leftover PENDING jobs)
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from videomix.catalog import ClipCatalog, InMemoryCatalog, ManifestCatalog, SettingsSource
from videomix.config import EngineConfig
from videomix.credits import CreditLedger
from videomix.execution import FFmpegTranscoder, OutputProbe, Transcoder
from videomix.jobs import JobRegistry, build_orchestrator, sweep_interrupted_jobs
from videomix.persistence import PersistenceManager
from videomix.routes import control, health
from videomix.service import MixService

logger = logging.getLogger(__name__)


def build_service(
    config: EngineConfig,
    catalog: Optional[ClipCatalog] = None,
    settings_source: Optional[SettingsSource] = None,
    transcoder: Optional[Transcoder] = None,
    probe: Optional[OutputProbe] = None,
) -> MixService:
    """
    Wire the engine together.

    Args:
        config: Engine configuration
        catalog: Clip catalog (default: manifests in config.catalog_dir, else empty in-memory)
        settings_source: Settings lookup (default: the catalog, when it provides settings)
        transcoder: Transcode capability (default: FFmpeg)
        probe: Output duration probe (default: ffprobe, only with the FFmpeg transcoder)
    """
    config.ensure_directories()

    if catalog is None:
        catalog = ManifestCatalog(config.catalog_dir) if config.catalog_dir else InMemoryCatalog()
    if settings_source is None:
        if not isinstance(catalog, SettingsSource):
            raise ValueError("settings_source is required when the catalog does not provide settings")
        settings_source = catalog
    if transcoder is None:
        transcoder = FFmpegTranscoder(config.ffmpeg_path)
        probe = probe or OutputProbe(config.ffprobe_path)

    persistence = PersistenceManager(db_path=config.db_path)
    registry = JobRegistry(persistence)
    ledger = CreditLedger(persistence)
    orchestrator = build_orchestrator(config, registry, ledger, catalog, transcoder, persistence, probe)

    return MixService(config, catalog, settings_source, registry, ledger, orchestrator)


def create_app(
    config: Optional[EngineConfig] = None,
    catalog: Optional[ClipCatalog] = None,
    transcoder: Optional[Transcoder] = None,
    probe: Optional[OutputProbe] = None,
) -> FastAPI:
    """Application factory. Serve with `uvicorn videomix.main:create_app --factory`."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = config or EngineConfig.from_env()
    service = build_service(config, catalog=catalog, transcoder=transcoder, probe=probe)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        swept = sweep_interrupted_jobs(service.registry, service.ledger)
        logger.info(f"[LIFECYCLE] Startup sweep complete ({len(swept)} job(s) failed)")
        service.orchestrator.start()
        logger.info(f"[LIFECYCLE] Orchestrator started ({config.queue_backend} backend)")
        yield
        service.orchestrator.shutdown(wait=False)
        logger.info("[LIFECYCLE] Shutdown complete")

    app = FastAPI(title="Videomix Backend", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.mix_service = service

    app.include_router(health.router)
    app.include_router(control.router)

    @app.get("/")
    async def root():
        return {"service": "videomix-backend", "status": "running"}

    return app
