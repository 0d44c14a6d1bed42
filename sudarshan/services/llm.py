"""Gemini adapter for evidence screening and email extraction.

Wraps the ``google-genai`` SDK behind two narrow operations:

* **classify_image** -- asks whether a photo shows a civic issue and
  returns the model's raw verdict text (``VALID`` / ``INVALID``).
* **extract_complaint** -- turns free-form email text into a JSON string
  with ``name``, ``phone``, ``type``, ``loc`` and ``desc``.

Both return provider text untouched.  Interpreting that text (verdict
parsing, JSON decoding) is the caller's job, because the provider output
is untrusted and loosely typed.
"""

from __future__ import annotations

import time
from typing import Final

import structlog
from google import genai
from google.genai import types
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

IMAGE_CLASSIFICATION_PROMPT: Final[str] = """\
Analyze this image for a government grievance portal.
Is this image related to civic issues like: Garbage, Potholes, Water leakage, \
Broken roads, Street lights, Sewer issues, or Construction debris?

- If YES (it looks like a valid complaint): Respond with "VALID"
- If NO (it looks like a laptop, selfie, person face, computer screen, animal, \
or random object): Respond with "INVALID"\
"""

EXTRACTION_PROMPT: Final[str] = """\
Analyze this email text and extract complaint details for a government portal.

EMAIL TEXT: "{email_body}"

Task: Extract these fields into JSON:
- name (Citizen Name)
- phone (Mobile Number)
- type (Complaint Type e.g., Pothole, Garbage, Street Light)
- loc (Location)
- desc (Description)

Rules:
- If phone is missing, use "+91 00000 00000".
- If type is unclear, categorize it as "General Grievance".
- Return ONLY valid JSON. No Markdown.\
"""


class LLMService:
    """Async interface to Gemini.

    Uses Vertex AI when a GCP project is configured, otherwise the Gemini
    Developer API with an API key.  The client is created lazily on first
    use so that constructing the service never touches the network.
    """

    def __init__(
        self,
        *,
        api_key: str = "",
        project_id: str = "",
        region: str = "asia-south1",
        model_name: str = "gemini-2.0-flash",
    ) -> None:
        self._api_key = api_key
        self._project_id = project_id
        self._region = region
        self._model_name = model_name
        self._client: genai.Client | None = None

    # -- lifecycle ----------------------------------------------------------

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if self._project_id:
                self._client = genai.Client(
                    vertexai=True,
                    project=self._project_id,
                    location=self._region,
                )
            else:
                self._client = genai.Client(api_key=self._api_key)
            logger.info(
                "llm_initialized",
                vertexai=bool(self._project_id),
                model=self._model_name,
            )
        return self._client

    # -- public API ---------------------------------------------------------

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    async def classify_image(self, image_bytes: bytes, mime_type: str) -> str:
        """Return the model's verdict text for an evidence photo."""
        start = time.perf_counter()
        client = self._get_client()

        response = await client.aio.models.generate_content(
            model=self._model_name,
            contents=[
                IMAGE_CLASSIFICATION_PROMPT,
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            ],
            config=types.GenerateContentConfig(
                temperature=0.0,
                max_output_tokens=16,
            ),
        )
        verdict = (response.text or "").strip()

        logger.info(
            "llm_classify_image",
            image_size=len(image_bytes),
            mime_type=mime_type,
            verdict=verdict,
            processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return verdict

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def extract_complaint(self, email_body: str) -> str:
        """Return the model's JSON extraction for an email body.

        The returned text is expected, but not guaranteed, to be JSON.
        """
        start = time.perf_counter()
        client = self._get_client()

        response = await client.aio.models.generate_content(
            model=self._model_name,
            contents=EXTRACTION_PROMPT.format(email_body=email_body),
            config=types.GenerateContentConfig(
                temperature=0.1,
                max_output_tokens=512,
                response_mime_type="application/json",
            ),
        )
        raw_text = (response.text or "").strip()

        logger.info(
            "llm_extract_complaint",
            body_length=len(email_body),
            response_length=len(raw_text),
            processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return raw_text
