"""
Configuration settings for the Sheet Analyst service.

Key Design Principle: All model selection and analysis defaults via environment
variables, never hardcoded at call sites.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Dict
from enum import Enum

class ModelProvider(Enum):
    CLAUDE = "claude"
    OPENAI = "openai"

@dataclass
class ModelConfig:
    """Configuration for a specific LLM provider."""
    provider: ModelProvider
    model_name: str
    api_key_env: str
    temperature: float = 0.3
    max_tokens: int = 2000

    @property
    def api_key(self) -> str:
        key = os.getenv(self.api_key_env)
        if not key:
            raise ValueError(f"Missing API key: {self.api_key_env}")
        return key

# Model Registry - Add new models here
MODEL_REGISTRY: Dict[str, ModelConfig] = {
    "gpt-4o": ModelConfig(
        provider=ModelProvider.OPENAI,
        model_name="gpt-4o",
        api_key_env="OPENAI_API_KEY",
    ),
    "gpt-4o-mini": ModelConfig(
        provider=ModelProvider.OPENAI,
        model_name="gpt-4o-mini",
        api_key_env="OPENAI_API_KEY",
    ),
    "claude-sonnet-4": ModelConfig(
        provider=ModelProvider.CLAUDE,
        model_name="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
    ),
}


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class AnalysisConfig:
    """Defaults applied by the request handlers and the CLI."""
    forecast_horizon: int = field(
        default_factory=lambda: int(os.getenv("FORECAST_HORIZON", "12"))
    )
    confidence_level: float = field(
        default_factory=lambda: _env_float("CONFIDENCE_LEVEL", "0.95")
    )
    correlation_threshold: float = field(
        default_factory=lambda: _env_float("CORRELATION_THRESHOLD", "0.5")
    )
    # Upper bound on rows x columns accepted per request
    max_cells: int = field(
        default_factory=lambda: int(os.getenv("MAX_CELLS", "200000"))
    )
    report_output_dir: str = field(
        default_factory=lambda: os.getenv("REPORT_OUTPUT_DIR", "reports")
    )
    trace_export_dir: Optional[str] = field(
        default_factory=lambda: os.getenv("TRACE_EXPORT_DIR") or None
    )

@dataclass
class AppConfig:
    """Main application configuration."""
    # Model selection - THE SINGLE POINT OF CONTROL
    active_model: str = field(
        default_factory=lambda: os.getenv("ACTIVE_MODEL", "gpt-4o")
    )

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", "sheet_analyst.log"))

    @property
    def model_config(self) -> ModelConfig:
        """Get the active model configuration."""
        if self.active_model not in MODEL_REGISTRY:
            raise ValueError(f"Unknown model: {self.active_model}. Available: {list(MODEL_REGISTRY.keys())}")
        return MODEL_REGISTRY[self.active_model]

def get_config() -> AppConfig:
    """Factory function to get application configuration."""
    return AppConfig()
