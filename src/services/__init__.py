"""Services for the application."""

from .block_extractor import BlockExtractor
from .change_detector import ChangeDetector
from .complexity_analyzer import ComplexityAnalyzer
from .diagram_processor import DiagramProcessor
from .dialect_validator import DialectValidator
from .metadata_writer import MetadataWriter, sidecar_path
from .orchestrator import PipelineOrchestrator, RepositoryWorker
from .platform_factory import create_platform, platform_factory_from_settings
from .reconciler import Reconciler

__all__ = [
    "BlockExtractor",
    "ChangeDetector",
    "ComplexityAnalyzer",
    "DiagramProcessor",
    "DialectValidator",
    "MetadataWriter",
    "PipelineOrchestrator",
    "Reconciler",
    "RepositoryWorker",
    "create_platform",
    "platform_factory_from_settings",
    "sidecar_path",
]
