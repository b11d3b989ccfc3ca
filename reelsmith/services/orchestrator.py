"""
Generation Orchestrator
Drives one job through plan, images, speech, subtitles, segments and final mix
"""

import asyncio
from pathlib import Path
from typing import List, Optional

from ..config import get_settings
from ..models.assets import AudioAsset
from ..models.job import VideoResult
from ..models.plan import ScriptPlan
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import (
    DialogueSynthesisError,
    JobCancelledError,
    JobNotFoundError,
    ReelSmithError,
)
from ..utils.logger import JobLogSink, LogSink, get_logger
from .compositor import Compositor
from .event_broker import EventBroker, get_event_broker
from .image_synthesizer import ImageSynthesizer
from .script_writer import ScriptWriter
from .segment_assembler import SegmentAssembler
from .speech_synthesizer import SpeechSynthesizer
from .subtitle_timer import SubtitleTimer
from .toolchain import FFmpegToolchain, get_toolchain
from .workspace import JobWorkspace

logger = get_logger()


class GenerationOrchestrator:
    """
    Runs the generation pipeline for a job and settles its final state.

    Stages run strictly in order and check the job's cancellation token at
    every boundary. Collaborators are injectable so tests can replace the
    network and ffmpeg sides.
    """

    def __init__(
        self,
        broker: Optional[EventBroker] = None,
        script_writer: Optional[ScriptWriter] = None,
        image_synthesizer: Optional[ImageSynthesizer] = None,
        speech_synthesizer: Optional[SpeechSynthesizer] = None,
        subtitle_timer: Optional[SubtitleTimer] = None,
        segment_assembler: Optional[SegmentAssembler] = None,
        compositor: Optional[Compositor] = None,
        toolchain: Optional[FFmpegToolchain] = None,
        videos_dir: Optional[str] = None,
        speech_line_delay: Optional[float] = None
    ):
        settings = get_settings()
        self.broker = broker or get_event_broker()
        self.toolchain = toolchain or get_toolchain()
        self.script_writer = script_writer or ScriptWriter()
        self.image_synthesizer = image_synthesizer or ImageSynthesizer()
        self.speech_synthesizer = speech_synthesizer or SpeechSynthesizer()
        self.subtitle_timer = subtitle_timer or SubtitleTimer()
        self.segment_assembler = segment_assembler or SegmentAssembler(self.toolchain)
        self.compositor = compositor or Compositor(self.toolchain)
        self.videos_dir = videos_dir or settings.videos_dir
        self.speech_line_delay = settings.speech_line_delay if speech_line_delay is None else speech_line_delay

    async def run(self, job_id: str, prompt: str):
        """
        Execute a job registered with the broker and settle it exactly once.

        Cancellation, including any failure raised after the token fired,
        settles as `cancelled`; other errors settle as `failed`.
        """
        token = self.broker.token(job_id)
        if token is None:
            raise JobNotFoundError(job_id)

        log = JobLogSink(self.broker, job_id, loop=asyncio.get_running_loop())

        try:
            result = await self.generate(job_id, prompt, token, log)
        except JobCancelledError:
            log.info("Video generation aborted.")
            self.broker.cancel(job_id)
        except asyncio.CancelledError:
            token.cancel()
            self.broker.cancel(job_id)
            raise
        except Exception as exc:
            if token.cancelled:
                log.info("Video generation aborted.")
                self.broker.cancel(job_id)
                return
            message = exc.message if isinstance(exc, ReelSmithError) else str(exc) or type(exc).__name__
            log.error(f"Video generation failed: {message}")
            logger.exception(f"Job {job_id} failed")
            self.broker.fail(job_id, message)
        else:
            self.broker.finish(job_id, result)

    async def generate(
        self,
        job_id: str,
        prompt: str,
        token: CancellationToken,
        log: Optional[LogSink] = None
    ) -> VideoResult:
        log = log or LogSink()

        # 1. Script plan
        token.raise_if_cancelled()
        log.info("Starting video generation...")
        plan = await self.script_writer.write(prompt, token, log)

        # 2. Working directory
        token.raise_if_cancelled()
        workspace = JobWorkspace(self.videos_dir, plan.video.title, job_id).prepare(plan.to_dict())
        log.info(f"Working directory ready: {workspace.root}")

        # 3. Images
        token.raise_if_cancelled()
        log.info("Generating images...")
        images = await self.image_synthesizer.synthesize_all(
            plan.image_prompts(),
            str(workspace.images_dir),
            token,
            log
        )

        # 4. Speech
        token.raise_if_cancelled()
        audio = await self.synthesize_dialogue(plan, workspace, token, log)

        # 5. Segments
        segment_paths: List[str] = []
        for segment in plan.segments:
            token.raise_if_cancelled()
            log.info(f"Creating subtitles for segment {segment.id}...")
            subtitles = self.subtitle_timer.build_subtitles(
                segment,
                audio,
                str(workspace.subtitles_dir),
                log
            )
            segment_path = await self.segment_assembler.build_segment(
                segment,
                images,
                audio,
                subtitles,
                workspace,
                token,
                log
            )
            segment_paths.append(segment_path)

        # 6. Final video
        token.raise_if_cancelled()
        final_path = await self.compositor.concatenate(segment_paths, workspace, token, log)
        token.raise_if_cancelled()
        final_path = await self.compositor.mix_background_music(
            final_path,
            plan.video.music_type,
            workspace,
            token,
            log
        )

        log.info(f"Video generation completed successfully. Final video: {final_path}")
        return VideoResult(
            final_video_path=final_path,
            output_dir=str(workspace.root),
            video_url=f"/videos/{workspace.name}/{Path(final_path).name}",
            title=plan.video.title,
            plan=plan.to_dict(),
        )

    async def synthesize_dialogue(
        self,
        plan: ScriptPlan,
        workspace: JobWorkspace,
        token: CancellationToken,
        log: LogSink
    ) -> List[AudioAsset]:
        """Speak every dialogue line in order; failed lines are logged and skipped"""
        log.info("Generating audio...")
        lines = plan.dialogue_lines()
        audio: List[AudioAsset] = []

        for index, line in enumerate(lines):
            token.raise_if_cancelled()
            output_path = str(workspace.audio_dir / f"audio_{index + 1}.mp3")
            try:
                await self.speech_synthesizer.synthesize(line, output_path, token, log=log)
                duration = await self.toolchain.probe_duration(output_path)
            except JobCancelledError:
                raise
            except Exception as exc:
                if token.cancelled:
                    raise JobCancelledError(job_id=token.job_id) from exc
                reason = exc.message if isinstance(exc, ReelSmithError) else str(exc)
                log.error(DialogueSynthesisError(line, reason).message)
                continue

            audio.append(AudioAsset(dialogue_text=line, file_path=output_path, duration_seconds=duration))
            log.info(f"Audio ready for line {index + 1}/{len(lines)} ({duration:.2f}s)")

            if self.speech_line_delay > 0:
                await asyncio.sleep(self.speech_line_delay)

        return audio
