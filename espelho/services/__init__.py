# Services package - business logic and external integrations
from espelho.services.storage import StorageService
from espelho.services.jobs import JobLifecycleManager
from espelho.services.assets import AssetRepository
from espelho.services.profiles import ProfileRepository
from espelho.services.orchestrator import GenerationOrchestrator, TryOnError
from espelho.services.watcher import JobWatcher, JobWatchTimeout
from espelho.services.wizard import StudioWizard

__all__ = [
    "StorageService",
    "JobLifecycleManager",
    "AssetRepository",
    "ProfileRepository",
    "GenerationOrchestrator",
    "TryOnError",
    "JobWatcher",
    "JobWatchTimeout",
    "StudioWizard",
]
