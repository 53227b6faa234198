"""
Service Layer - Inventory, hash resolution, retrieval, analysis and the ServicesContainer.
"""

from scml.services.analysis_service import AnalysisResult, BatchAnalysisService
from scml.services.container import ServicesContainer, create_engine, create_services
from scml.services.download_models import DownloadItem, DownloadManifest, DownloadResult
from scml.services.download_service import DownloadService, fetch_paths, read_path_list
from scml.services.hash_resolver import HashResolution, HashResolver, ResolutionStatus
from scml.services.inplace_analysis_service import InPlaceAnalysisService
from scml.services.inventory_service import (
    InventoryBuilder,
    InventoryRunResult,
    InventoryWriter,
    TargetOutcome,
    build_inventories,
    finalize_inventory,
    iter_inventory,
)
from scml.services.parallel_download_service import DownloadProgress, ParallelDownloadService
from scml.services.statistics import RunStatistics, StatisticsSnapshot

__all__ = [
    # Container and factory
    "ServicesContainer",
    "create_services",
    "create_engine",
    # Inventory
    "InventoryBuilder",
    "InventoryWriter",
    "InventoryRunResult",
    "TargetOutcome",
    "build_inventories",
    "finalize_inventory",
    "iter_inventory",
    # Hash resolution
    "HashResolver",
    "HashResolution",
    "ResolutionStatus",
    # Retrieval
    "DownloadService",
    "fetch_paths",
    "read_path_list",
    "ParallelDownloadService",
    "DownloadProgress",
    "DownloadItem",
    "DownloadManifest",
    "DownloadResult",
    # Analysis
    "BatchAnalysisService",
    "InPlaceAnalysisService",
    "AnalysisResult",
    # Statistics
    "RunStatistics",
    "StatisticsSnapshot",
]
