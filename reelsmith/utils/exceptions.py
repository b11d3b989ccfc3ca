"""
Custom Exceptions for ReelSmith
Structured error handling with recovery hints
"""

from typing import Optional, Dict, Any


class ReelSmithError(Exception):
    """Base exception for all ReelSmith errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to JSON-serializable dict"""
        return {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
            "details": self.details
        }


# ============================================================================
# Validation Errors
# ============================================================================

class EmptyPromptError(ReelSmithError):
    """Submitted prompt is missing or blank"""

    def __init__(self):
        super().__init__(
            message="Prompt is required.",
            code="VALIDATION_ERROR",
            recoverable=True,
            recovery_hint="Describe the video you want in the prompt field."
        )


class ScriptPlanError(ReelSmithError):
    """Language model returned an unusable script plan"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code="SCRIPT_PLAN_ERROR",
            recoverable=True,
            recovery_hint="The language model response was malformed. Submit the prompt again.",
            details=kwargs
        )


class APIKeyError(ReelSmithError):
    """Missing or invalid API key"""

    def __init__(self, service: str):
        super().__init__(
            message=f"API key for {service} is missing or invalid",
            code="API_KEY_ERROR",
            recoverable=True,
            recovery_hint=f"Configure the {service} API key in the .env file.",
            details={"service": service}
        )


# ============================================================================
# Provider Errors
# ============================================================================

class ImageProviderError(ReelSmithError):
    """Image generation or download failed for one prompt"""

    def __init__(self, message: str, prompt: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            code="IMAGE_PROVIDER_ERROR",
            recoverable=True,
            recovery_hint="The image provider may be rate limiting. The prompt is retried, then skipped.",
            details={"prompt": prompt, **kwargs}
        )


class SpeechEvasionError(ReelSmithError):
    """Speech request was blocked or failed through the current proxy"""

    def __init__(self, message: str, proxy: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            code="SPEECH_EVASION_ERROR",
            recoverable=True,
            recovery_hint="The request is retried through another proxy.",
            details={"proxy": proxy, **kwargs}
        )


class SpeechDownloadError(ReelSmithError):
    """Generated speech file could not be downloaded"""

    def __init__(self, message: str, output_path: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            code="SPEECH_DOWNLOAD_ERROR",
            recoverable=True,
            recovery_hint="The speech provider accepted the line but the download failed.",
            details={"output_path": output_path, **kwargs}
        )


class DialogueSynthesisError(ReelSmithError):
    """A single dialogue line could not be synthesized"""

    def __init__(self, dialogue: str, reason: str):
        super().__init__(
            message=f"Failed to generate audio for dialogue \"{dialogue}\": {reason}",
            code="DIALOGUE_ERROR",
            recoverable=True,
            recovery_hint="The line is skipped; its segment will fail to assemble if it needs it.",
            details={"dialogue": dialogue, "reason": reason}
        )


class ProxyListUnavailableError(ReelSmithError):
    """Proxy candidate list source could not be fetched"""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"Failed to fetch proxy list from {url}: {reason}",
            code="PROXY_LIST_UNAVAILABLE",
            recoverable=True,
            recovery_hint="Check network access to the proxy list source or configure PROXY_LIST_URL.",
            details={"url": url, "reason": reason}
        )


class PoolExhaustedError(ReelSmithError):
    """No proxy candidate in the list passed validation"""

    def __init__(self, checked: int):
        super().__init__(
            message="No working proxy found in the list.",
            code="PROXY_POOL_EXHAUSTED",
            recoverable=True,
            recovery_hint="A fresh list is fetched on the next acquire.",
            details={"checked": checked}
        )


# ============================================================================
# Assembly Errors
# ============================================================================

class AssetResolutionError(ReelSmithError):
    """A required image or audio asset is missing"""

    def __init__(self, message: str, segment_id: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            code="ASSET_RESOLUTION_ERROR",
            recoverable=False,
            recovery_hint="An earlier stage skipped an asset this segment needs. Submit the prompt again.",
            details={"segment_id": segment_id, **kwargs}
        )


class ToolchainError(ReelSmithError):
    """FFmpeg or FFprobe execution error"""

    def __init__(self, message: str, command: Optional[str] = None, stderr: Optional[str] = None):
        super().__init__(
            message=message,
            code="TOOLCHAIN_ERROR",
            recoverable=False,
            recovery_hint="Ensure FFmpeg is installed and in PATH. Check the generated media isn't corrupted.",
            details={"command": command, "stderr": stderr[-500:] if stderr else None}
        )


# ============================================================================
# Job Processing Errors
# ============================================================================

class JobNotFoundError(ReelSmithError):
    """Job not found"""

    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job not found: {job_id}",
            code="JOB_NOT_FOUND",
            recoverable=False,
            details={"job_id": job_id}
        )


class JobCancelledError(ReelSmithError):
    """Job was cancelled"""

    def __init__(self, job_id: Optional[str] = None):
        super().__init__(
            message="Video generation aborted",
            code="JOB_CANCELLED",
            recoverable=False,
            details={"job_id": job_id}
        )
