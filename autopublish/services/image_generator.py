import base64
import logging
from typing import Optional

from autopublish.config import settings
from autopublish.errors import ImageError
from autopublish.services.hf_client import HFClient

logger = logging.getLogger(__name__)

COVER_STYLE = (
    "Professional blog featured image, modern and clean, landscape 16:9, "
    "relevant visual metaphors, good contrast, space for a text overlay, no text."
)

class HFImageGenerator:
    """ImageGenerator: text-to-image, returned as a base64 data URL."""

    def __init__(self, hf: Optional[HFClient] = None, model: Optional[str] = None):
        self._hf = hf
        self.model = model or settings.image_model

    @property
    def hf(self) -> HFClient:
        if self._hf is None:
            self._hf = HFClient()
        return self._hf

    def generate(self, subject: str) -> str:
        prompt = f"{COVER_STYLE} Subject: {subject}"
        try:
            image = self.hf.text_to_image(self.model, prompt)
        except RuntimeError as e:
            raise ImageError(f"Image generation failed: {e}", stage="image") from e
        logger.info("[image] generated featured image for %r (%d bytes)", subject, len(image))
        return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
