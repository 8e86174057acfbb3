"""
Prompt loader for the qualitative analysis adapter.

Loads the anomaly-analysis prompt from YAML.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from marketwatch.domain.anomaly.entities import QualitativeRequest

logger = logging.getLogger(__name__)

PROMPT_KEY = "anomaly_analysis"

_FALLBACK_PROMPTS: dict[str, Any] = {
    PROMPT_KEY: {
        "system": "You are a cynical crypto risk analyst. Reply with JSON only.",
        "user_template": (
            "Symbol: {symbol}. Math Risk Score: {base_score}/100. RSI: {rsi}. "
            "Orderbook: {orderbook_status}. Return JSON with exactly the keys "
            "final_risk_score, verdict, likely_scenario, short_comment."
        ),
    }
}


class PromptLoader:
    """Load and render prompts from YAML."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """
        Initialize prompt loader.

        Args:
            config_path: Path to a prompts.yaml file (defaults to the bundled one).
        """
        self.config_path = config_path or Path(__file__).parent / "prompts.yaml"
        self.prompts = self._load_prompts()

    def _load_prompts(self) -> dict[str, Any]:
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                prompts = yaml.safe_load(f) or {}
            logger.info("Loaded prompts from %s", self.config_path)
            return prompts
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load prompts from %s: %s", self.config_path, e)
            return dict(_FALLBACK_PROMPTS)

    def _section(self) -> dict[str, str]:
        return self.prompts.get(PROMPT_KEY) or _FALLBACK_PROMPTS[PROMPT_KEY]

    def get_system_prompt(self) -> str:
        return self._section().get("system", _FALLBACK_PROMPTS[PROMPT_KEY]["system"])

    def get_user_prompt(self, request: QualitativeRequest) -> str:
        """Render the user prompt for one analysis request."""
        template = self._section().get(
            "user_template", _FALLBACK_PROMPTS[PROMPT_KEY]["user_template"]
        )
        rsi = f"{request.rsi:.2f}" if request.rsi is not None else "unknown"
        return template.format(
            symbol=request.symbol,
            base_score=request.base_score,
            rsi=rsi,
            orderbook_status="Thin" if request.is_thin else "Normal",
        )


# Global prompt loader instance
_prompt_loader: Optional[PromptLoader] = None


def get_prompt_loader() -> PromptLoader:
    """Get global prompt loader instance."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader
