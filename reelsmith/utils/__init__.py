"""Utils package initialization"""
from .logger import setup_logger, get_logger, LogSink, JobLogSink
from .exceptions import (
    ReelSmithError,
    EmptyPromptError,
    ScriptPlanError,
    APIKeyError,
    ImageProviderError,
    SpeechEvasionError,
    SpeechDownloadError,
    DialogueSynthesisError,
    ProxyListUnavailableError,
    PoolExhaustedError,
    AssetResolutionError,
    ToolchainError,
    JobNotFoundError,
    JobCancelledError
)
from .cancellation import CancellationToken
from .retry import retry_async

__all__ = [
    "setup_logger",
    "get_logger",
    "LogSink",
    "JobLogSink",
    "ReelSmithError",
    "EmptyPromptError",
    "ScriptPlanError",
    "APIKeyError",
    "ImageProviderError",
    "SpeechEvasionError",
    "SpeechDownloadError",
    "DialogueSynthesisError",
    "ProxyListUnavailableError",
    "PoolExhaustedError",
    "AssetResolutionError",
    "ToolchainError",
    "JobNotFoundError",
    "JobCancelledError",
    "CancellationToken",
    "retry_async"
]
