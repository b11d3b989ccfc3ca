"""Services package initialization"""
from .event_broker import EventBroker, Subscriber, get_event_broker
from .proxy_pool import ProxyPool, ProxyRecord, HttpProxySource, get_proxy_pool
from .speech_synthesizer import SpeechSynthesizer, TtsMp3Client
from .image_synthesizer import ImageSynthesizer, TogetherImageClient
from .script_writer import ScriptWriter, parse_script_plan
from .subtitle_timer import SubtitleTimer
from .toolchain import FFmpegToolchain, get_toolchain
from .segment_assembler import SegmentAssembler
from .compositor import Compositor
from .workspace import JobWorkspace, sanitize_filename
from .orchestrator import GenerationOrchestrator
from .job_runner import JobRunner, get_job_runner

__all__ = [
    "EventBroker",
    "Subscriber",
    "get_event_broker",
    "ProxyPool",
    "ProxyRecord",
    "HttpProxySource",
    "get_proxy_pool",
    "SpeechSynthesizer",
    "TtsMp3Client",
    "ImageSynthesizer",
    "TogetherImageClient",
    "ScriptWriter",
    "parse_script_plan",
    "SubtitleTimer",
    "FFmpegToolchain",
    "get_toolchain",
    "SegmentAssembler",
    "Compositor",
    "JobWorkspace",
    "sanitize_filename",
    "GenerationOrchestrator",
    "JobRunner",
    "get_job_runner"
]
