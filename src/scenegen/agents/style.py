"""Reference image style analysis agent."""

from ..models import ReferenceImage
from .base import BaseAgent

STYLE_PROMPT = (
    "Describe the artistic style, subject, mood, and color palette of this image "
    "in a few concise keywords, suitable for an image generation prompt."
)


class StyleAnalysisAgent(BaseAgent[ReferenceImage, str]):
    """Turns a reference image into a short style description."""

    @property
    def name(self) -> str:
        return "StyleAnalysisAgent"

    @property
    def system_prompt(self) -> str:
        return (
            "You are an art director. Answer with a short comma-separated list "
            "of visual keywords and nothing else."
        )

    def run(self, input_data: ReferenceImage) -> str:
        self._logger.info(f"Analyzing reference image ({len(input_data.data)} bytes)")
        response = self._create_message(
            prompt=STYLE_PROMPT,
            max_tokens=256,
            temperature=0.3,
            images=[input_data],
        )
        return response.strip()

    def describe(self, image: ReferenceImage) -> str:
        """Style analyzer entry point used by the generation pipeline."""
        return self.run(image)
