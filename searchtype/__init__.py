"""Classify search queries by the kind of exact match they produce."""

from searchtype.channel import Channel
from searchtype.classifier import Category, ClassificationRecord, classify
from searchtype.config import Config, VisualizerConfig, load_config
from searchtype.errors import PipelineAborted, SearchTypeError
from searchtype.executor import RequestExecutor, ignore_messages
from searchtype.pipeline import PipelineResult, run_pipeline
from searchtype.ratelimit import RateLimiter
from searchtype.saver import Saver, UnknownPolicy
from searchtype.shutdown import Shutdown

__all__ = [
    "Category",
    "Channel",
    "ClassificationRecord",
    "Config",
    "PipelineAborted",
    "PipelineResult",
    "RateLimiter",
    "RequestExecutor",
    "Saver",
    "SearchTypeError",
    "Shutdown",
    "UnknownPolicy",
    "VisualizerConfig",
    "classify",
    "ignore_messages",
    "load_config",
    "run_pipeline",
]
