"""Google Imagen API client wrapper via Vertex AI."""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import google.auth
import google.auth.transport.requests
import requests

from ..config import config
from ..errors import ImagenAPIError

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    """Result of an Imagen generation call.

    ``image_bytes`` is None when the service answered but produced no image,
    typically because the prompt was filtered.
    """

    prompt: str
    image_bytes: Optional[bytes] = None
    mime_type: str = "image/jpeg"
    filtered_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)


class ImagenClient:
    """Client wrapper for Google Imagen image generation via Vertex AI."""

    DEFAULT_LOCATION = "us-central1"
    DEFAULT_MODEL = "imagen-3.0-generate-002"
    DEFAULT_TIMEOUT = 120.0
    SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

    def __init__(
        self,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        model: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the Imagen client.

        Args:
            project_id: Google Cloud project ID.
            location: GCP region for Vertex AI.
            model: Imagen model name.
            session: Optional requests session (shared connection pool).
            timeout: Request timeout in seconds.
        """
        self._project_id = project_id or config.google_cloud_project
        self._location = location or config.imagen_location or self.DEFAULT_LOCATION
        self._model = model or config.imagen_model or self.DEFAULT_MODEL
        self._session = session or requests.Session()
        self._timeout = timeout
        self._credentials = None

        if not self._project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT not set")

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self._location}-aiplatform.googleapis.com/v1/"
            f"projects/{self._project_id}/locations/{self._location}/"
            f"publishers/google/models/{self._model}:predict"
        )

    def _access_token(self) -> str:
        """Return a fresh OAuth token from application default credentials."""
        if self._credentials is None:
            self._credentials, _ = google.auth.default(scopes=self.SCOPES)
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        output_mime_type: str = "image/jpeg",
        num_images: int = 1,
    ) -> ImageResult:
        """Generate an image from a text prompt.

        Args:
            prompt: Text description of the image to generate.
            aspect_ratio: Image aspect ratio ('1:1', '3:4', '4:3', '9:16', '16:9').
            output_mime_type: Encoding of the returned image.
            num_images: Number of images to request (the first one is kept).

        Returns:
            ImageResult whose ``image_bytes`` is None if nothing was produced.

        Raises:
            ImagenAPIError: If the service answers with a non-200 status.
            requests.RequestException: On transport failures.
        """
        result = ImageResult(
            prompt=prompt,
            mime_type=output_mime_type,
            created_at=datetime.now(),
            metadata={
                "aspect_ratio": aspect_ratio,
                "model": self._model,
            },
        )

        request_body = {
            "instances": [
                {"prompt": prompt}
            ],
            "parameters": {
                "sampleCount": num_images,
                "aspectRatio": aspect_ratio,
                "includeRaiReason": True,
                "outputOptions": {"mimeType": output_mime_type},
            },
        }

        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }

        logger.info(f"Generating image with Imagen: {prompt[:50]}...")
        response = self._session.post(
            self.endpoint, json=request_body, headers=headers, timeout=self._timeout
        )

        if response.status_code != 200:
            logger.error(f"Imagen API error: {response.status_code}: {response.text[:500]}")
            raise ImagenAPIError(response.status_code, response.text[:500])

        data = response.json()

        predictions = data.get("predictions", [])
        if not predictions:
            logger.warning("Imagen returned no predictions")
            return result

        prediction = predictions[0]
        image_data = prediction.get("bytesBase64Encoded")
        if not image_data:
            result.filtered_reason = prediction.get("raiFilteredReason")
            logger.warning(f"Imagen returned no image data: {result.filtered_reason}")
            return result

        result.image_bytes = base64.b64decode(image_data)
        result.mime_type = prediction.get("mimeType", output_mime_type)
        return result

    def synthesize(self, prompt: str, aspect_ratio) -> Optional[bytes]:
        """Image synthesizer entry point used by the generation pipeline."""
        ratio = getattr(aspect_ratio, "value", aspect_ratio)
        return self.generate_image(prompt, aspect_ratio=ratio).image_bytes
