"""
ReelSmith Configuration
Centralized settings management using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "ReelSmith"
    debug: bool = False
    app_version: str = "1.0.0"

    # ==========================================================================
    # Google Gemini (script plan)
    # ==========================================================================
    gemini_api_key: str = Field(default="", description="Google Gemini API Key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model for script plans")
    script_temperature: float = Field(default=0.7, ge=0, le=2)
    script_top_p: float = Field(default=0.7, ge=0, le=1)
    script_top_k: int = Field(default=50, ge=1)

    # ==========================================================================
    # Together AI (image synthesis)
    # ==========================================================================
    together_api_key: str = Field(default="", description="Together AI API Key")
    together_base_url: str = Field(default="https://api.together.xyz/v1")
    image_model: str = Field(default="black-forest-labs/FLUX.1-schnell-Free")
    image_width: int = Field(default=1024, ge=64, le=2048)
    image_height: int = Field(default=1024, ge=64, le=2048)
    image_steps: int = Field(default=4, ge=1, le=50)
    image_max_prompts: int = Field(default=9, ge=1, description="Prompts attempted per batch")
    image_max_attempts: int = Field(default=10, ge=1, description="Attempts per image prompt")
    image_request_delay: float = Field(default=2.0, ge=0, description="Pause after each generated image")
    image_retry_delay: float = Field(default=0.0, ge=0, description="Base backoff between image attempts")
    image_request_timeout: float = Field(default=120.0, gt=0)

    # ==========================================================================
    # Speech synthesis (ttsmp3 through rotating proxies)
    # ==========================================================================
    tts_base_url: str = Field(default="https://ttsmp3.com")
    tts_voice: str = Field(default="Matthew", description="Default speech voice")
    speech_line_delay: float = Field(default=3.0, ge=0, description="Pause after each spoken line")
    speech_request_timeout: float = Field(default=30.0, gt=0)
    speech_retry_delay: float = Field(default=0.0, ge=0, description="Pause between proxy rotations")

    # ==========================================================================
    # Proxy pool
    # ==========================================================================
    proxy_list_url: str = Field(
        default="https://github.com/zloi-user/hideip.me/raw/refs/heads/master/https.txt",
        description="Plain text list of host:port relay candidates"
    )
    proxy_probe_url: str = Field(default="https://httpbin.org/ip", description="IP echo endpoint")
    proxy_probe_timeout: float = Field(default=10.0, gt=0)
    proxy_scheme: str = Field(default="http", description="Scheme used to reach relay candidates")
    proxy_verify_ssl: bool = Field(default=False)

    # ==========================================================================
    # FFmpeg
    # ==========================================================================
    ffmpeg_binary: str = Field(default="ffmpeg")
    ffprobe_binary: str = Field(default="ffprobe")
    video_preset: str = Field(default="fast")
    video_crf: int = Field(default=22, ge=0, le=51)
    audio_bitrate: str = Field(default="128k")
    subtitle_style: str = Field(
        default=(
            "Fontname=Arial,Fontsize=20,PrimaryColour=&HFFFFFF&,OutlineColour=&H000000&,"
            "BackColour=&H40000000&,Bold=1,BorderStyle=3,Outline=1,Shadow=2,Alignment=2,"
            "MarginL=40,MarginR=40,MarginV=10"
        )
    )

    # ==========================================================================
    # Background music
    # ==========================================================================
    music_dir: str = Field(default="assets/background_audio_clips")
    default_music_type: str = Field(default="ambient")
    music_volume: float = Field(default=0.3, ge=0, le=1)

    # ==========================================================================
    # Progress streaming
    # ==========================================================================
    observer_queue_size: int = Field(default=0, ge=0, description="Per-observer queue size (0 = unbounded)")
    shutdown_grace: float = Field(default=10.0, ge=0, description="Seconds aborted jobs get to settle on shutdown")

    # ==========================================================================
    # Security
    # ==========================================================================
    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:8000",
            "http://127.0.0.1:8000"
        ],
        description="Allowed CORS origins"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================
    videos_dir: str = Field(default="public/videos", description="Job working directories")

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
