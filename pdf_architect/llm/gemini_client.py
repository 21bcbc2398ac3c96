"""Google Gemini REST client for the three model capabilities the editor consumes.

- perform_visual_ocr: image segment -> text (or "No text found")
- generate_instructions: multimodal prompt -> JSON array of edit instructions
- generate_image: text prompt -> data: URL of a generated PNG
"""
import base64
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from pdf_architect.core.config import settings
from pdf_architect.core.errors import SynthesisError

logger = logging.getLogger(__name__)

OCR_PROMPT = (
    "Read and extract all text from this image segment. Provide only the extracted text. "
    "If no text is visible, respond with 'No text found'."
)


def _repair_truncated_array(text: str) -> Optional[List[Any]]:
    """Try to salvage a truncated JSON array response from Gemini.

    When max tokens is hit the array is typically cut inside an element:
      [{"action": "ADD_TEXT", ...}, {"action": "REPL
    Progressively trim back to the last complete element and close the array.
    """
    idx = text.rfind("}")
    while idx > 0:
        candidate = text[:idx + 1]
        open_brackets = candidate.count("[") - candidate.count("]")
        open_braces = candidate.count("{") - candidate.count("}")
        closing = "}" * max(0, open_braces) + "]" * max(0, open_brackets)
        try:
            result = json.loads(candidate + closing)
            if isinstance(result, list) and result:
                return result
        except json.JSONDecodeError:
            pass
        idx = text.rfind("}", 0, idx)
    return None


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        image_model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.GEMINI_API_KEY
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set")

        self.model = model or settings.GEMINI_MODEL
        self.image_model = image_model or settings.GEMINI_IMAGE_MODEL
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"
        self.timeout = settings.GEMINI_TIMEOUT
        self._transport = transport
        logger.info(f"Initialized GeminiClient with model: {self.model}, image_model: {self.image_model}")

    def _endpoint(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:generateContent?key={self.api_key}"

    @staticmethod
    def image_part(image_bytes: bytes, mime_type: str = "image/jpeg") -> Dict[str, Any]:
        return {
            "inlineData": {
                "mimeType": mime_type,
                "data": base64.b64encode(image_bytes).decode("ascii"),
            }
        }

    @staticmethod
    def _build_body(
        parts: List[Dict[str, Any]],
        model: str = "",
        json_schema: Optional[Dict] = None,
        max_tokens: int = 8192,
        thinking: bool = True,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"maxOutputTokens": max_tokens},
        }
        if thinking:
            # 3.x models REQUIRE thinking; 2.x: disable it so tokens go to the answer.
            budget = 8192 if model.startswith("gemini-3") else 0
            body["generationConfig"]["thinkingConfig"] = {"thinkingBudget": budget}
        if json_schema:
            body["generationConfig"]["responseMimeType"] = "application/json"
            body["generationConfig"]["responseSchema"] = _clean_schema_for_gemini(json_schema)
        return body

    async def _post(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Sending request to Gemini API with model: {model}")
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(
                    self._endpoint(model),
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Error in Gemini API request: {e}")
            raise SynthesisError(f"Gemini API unreachable: {e}") from e

        if resp.status_code != 200:
            logger.error(f"Gemini API failed {resp.status_code}: {resp.text[:500]}")
            raise SynthesisError(f"Gemini API failed with status {resp.status_code}: {resp.text[:500]}")
        try:
            return resp.json()
        except ValueError as e:
            logger.error(f"Gemini API returned non-JSON body: {resp.text[:200]}")
            raise SynthesisError(f"Gemini API returned a non-JSON response: {e}") from e

    # ── Capabilities ───────────────────────────────────────────────────────

    async def perform_visual_ocr(self, image_bytes: bytes) -> str:
        """Read the text in a JPEG image segment."""
        parts = [self.image_part(image_bytes), {"text": OCR_PROMPT}]
        data = await self._post(self.model, self._build_body(parts, model=self.model, max_tokens=2048))
        text = _extract_text(data)
        logger.info(f"[OCR] Gemini returned {len(text)} chars (first 100): {text[:100]}")
        return text

    async def generate_instructions(self, parts: List[Dict[str, Any]], json_schema: Dict[str, Any]) -> str:
        """Send the instruction prompt; return the raw JSON text of the answer."""
        body = self._build_body(parts, model=self.model, json_schema=json_schema)
        data = await self._post(self.model, body)
        text = _extract_text(data)
        finish = data.get("candidates", [{}])[0].get("finishReason", "")
        logger.info(f"Received Gemini JSON response (finish={finish}, first 100): {text[:100]}...")
        if finish == "MAX_TOKENS":
            logger.warning("[JSON] Gemini response hit max tokens, may be truncated")
        return text

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Generate a square image for ``prompt``; returns a data: URL or None."""
        body = self._build_body([{"text": prompt}], model=self.image_model, thinking=False)
        body["generationConfig"]["imageConfig"] = {"aspectRatio": "1:1"}
        try:
            data = await self._post(self.image_model, body)
        except SynthesisError as e:
            logger.error(f"Image generation failed: {e}")
            return None

        for candidate in data.get("candidates", [])[:1]:
            for part in candidate.get("content", {}).get("parts", []):
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    mime = inline.get("mimeType", "image/png")
                    return f"data:{mime};base64,{inline['data']}"
        logger.warning("Image generation returned no image part")
        return None


# ── Helpers ────────────────────────────────────────────────────────────────

def _extract_text(response_data: Dict) -> str:
    """Extract text from a Gemini generateContent response (thought parts skipped)."""
    candidates = response_data.get("candidates", [])
    if not candidates:
        raise SynthesisError(f"Gemini returned no candidates: {str(response_data)[:300]}")
    parts = candidates[0].get("content", {}).get("parts", [])
    return "".join(p.get("text", "") for p in parts if not p.get("thought"))


def _clean_schema_for_gemini(schema: Dict) -> Dict:
    """Remove JSON Schema keys that Gemini doesn't support.

    Gemini's responseSchema supports a subset: type, properties, required,
    items, enum, description, format, nullable. It does NOT support
    additionalProperties, $schema, definitions, $ref, etc.
    """
    if not isinstance(schema, dict):
        return schema

    cleaned = {}
    ALLOWED = {
        "type", "properties", "required", "items", "enum",
        "description", "format", "nullable", "minimum", "maximum",
    }
    for k, v in schema.items():
        if k not in ALLOWED:
            continue
        if k == "properties" and isinstance(v, dict):
            cleaned[k] = {pk: _clean_schema_for_gemini(pv) for pk, pv in v.items()}
        elif k == "items" and isinstance(v, dict):
            cleaned[k] = _clean_schema_for_gemini(v)
        else:
            cleaned[k] = v
    return cleaned
