import os

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


KNOWN_BACKENDS = ("openrouter", "gemini", "groq")


class Settings(BaseSettings):
    """Global configuration for the Third Eye backend."""

    openrouter_api_key: str = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY", ""))
    openrouter_models: list[str] = [
        "qwen/qwen-2.5-vl-72b-instruct",
        "qwen/qwen3-vl-32b-instruct",
        "qwen/qwen-2.5-vl-7b-instruct:free",
    ]
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    gemini_model: str = "gemini-2.0-flash-exp"
    groq_api_key: str = Field(default_factory=lambda: os.getenv("GROQ_API_KEY", ""))
    groq_models: list[str] = [
        "llama-3.2-90b-vision-preview",
        "llama-3.2-11b-vision-preview",
    ]
    backend_order: list[str] = ["openrouter", "gemini", "groq"]

    analysis_timeout_seconds: float = 20.0
    loop_interval_seconds: float = 0.05
    query_delay_seconds: float = 0.3
    box_tap_delay_seconds: float = 0.8

    speech_locale: str = "tr-TR"
    speech_rate: float = 1.3
    speech_pitch: float = 1.0
    quiescence_seconds: float = 2.5

    torch_low_threshold: float = 160.0
    torch_high_threshold: float = 220.0

    emergency_number: str = ""
    emergency_link_delay_seconds: float = 3.0

    proximity_near_area: float = 3000.0
    proximity_close_area: float = 5000.0

    model_config = SettingsConfigDict(env_prefix="THIRDEYE_", extra="ignore")

    @field_validator("backend_order")
    @classmethod
    def validate_backend_order(cls, value: list[str]) -> list[str]:
        names = [name.strip().lower() for name in value if name.strip()]
        unknown = [name for name in names if name not in KNOWN_BACKENDS]
        if unknown:
            raise ValueError(f"Unknown vision backends: {', '.join(unknown)}")
        return names

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        if self.torch_low_threshold >= self.torch_high_threshold:
            raise ValueError("torch_low_threshold must be below torch_high_threshold.")
        if self.proximity_near_area > self.proximity_close_area:
            raise ValueError("proximity_near_area must not exceed proximity_close_area.")
        return self


settings = Settings()  # type: ignore[call-arg]
