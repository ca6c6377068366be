from pydantic import BaseModel, ConfigDict, Field

DEFAULT_WINDOW_MS = 5 * 60 * 1000


class ProcessorConfig(BaseModel):
    """Engine-wide settings; one window length applies to every ticker."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    window_ms: int = Field(DEFAULT_WINDOW_MS, gt=0, description="Rolling window length in milliseconds.")
    prune_history: bool = Field(False, description="Drop ticks that fell out of the window after each update.")
