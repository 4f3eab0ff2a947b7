"""
Pipeline module initialization.

Provides the staged reconstruction workflow, its progress contract and
the visualization bundle shared between stages.
"""

from .progress import ProgressEvent, ProgressReporter, report_progress, STAGES, TOTAL_STAGES
from .bundle import VisualizationBundle, build_visualizations, EXPORT_NAMES
from .orchestrator import (
    PipelineOrchestrator, ReconstructionResult, SceneOperations, run_pipeline, STAGE_MESSAGES
)

__all__ = [
    'ProgressEvent',
    'ProgressReporter',
    'report_progress',
    'STAGES',
    'TOTAL_STAGES',
    'VisualizationBundle',
    'build_visualizations',
    'EXPORT_NAMES',
    'PipelineOrchestrator',
    'ReconstructionResult',
    'SceneOperations',
    'run_pipeline',
    'STAGE_MESSAGES'
]
