from __future__ import annotations

import base64
import json
import logging

import requests

from pharmapos.domain.errors import AssistantUnavailableError, ValidationError

log = logging.getLogger("pharmapos.assistant")

API_ROOT = "https://generativelanguage.googleapis.com/v1beta/models"

SYSTEM_INSTRUCTION = (
    "You are an expert pharmaceutical assistant. Provide clear, concise, and accurate information "
    "related to medications. Do not provide medical advice. For queries about inventory, use the "
    "provided context to answer."
)

OCR_PROMPT = (
    "Analyze this image of a pharmacy stock list or invoice. Extract all medicine details. "
    "Return a valid JSON array of objects. Each object must have these keys: 'name' (string), "
    "'manufacturer' (string), 'stock' (number), 'mrp' (number, Maximum Retail Price), "
    "'expiryDate' (string, 'YYYY-MM-DD' format), 'category' (string, e.g., 'Painkiller', "
    "'Antibiotic'), 'batchNumber' (string), 'hsnCode' (string). If a value is missing, use a "
    "reasonable default like 'Unknown' or null."
)

OCR_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "name": {"type": "STRING"},
            "manufacturer": {"type": "STRING"},
            "stock": {"type": "NUMBER"},
            "mrp": {"type": "NUMBER"},
            "expiryDate": {"type": "STRING"},
            "category": {"type": "STRING"},
            "batchNumber": {"type": "STRING"},
            "hsnCode": {"type": "STRING"},
        },
        "required": ["name", "stock", "mrp", "expiryDate", "batchNumber", "hsnCode"],
    },
}

FALLBACK_REPLY = "Sorry, I encountered an error. Please try again."
LOW_STOCK_PHRASES = ("low stock", "running low")


class AssistantService:
    def __init__(
        self,
        api_key: str | None,
        inventory_service=None,
        model: str = "gemini-2.5-flash",
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.inventory = inventory_service
        self.model = model
        self.timeout = timeout

    def _post_json(self, url: str, payload: dict) -> dict:
        r = requests.post(
            url,
            json=payload,
            headers={"x-goog-api-key": self.api_key or ""},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def _generate(self, payload: dict) -> str:
        if not self.api_key:
            raise AssistantUnavailableError("GEMINI_API_KEY is not configured.")
        data = self._post_json(f"{API_ROOT}/{self.model}:generateContent", payload)

        # {"candidates":[{"content":{"parts":[{"text":"..."}]}}]}
        for candidate in data.get("candidates") or []:
            parts = (candidate.get("content") or {}).get("parts") or []
            text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
            if text.strip():
                return text
        raise AssistantUnavailableError(f"Assistant response had no text. Raw: {data}")

    def build_prompt(self, question: str) -> str:
        lowered = question.lower()
        if self.inventory is None or not any(p in lowered for p in LOW_STOCK_PHRASES):
            return question

        low = self.inventory.low_stock()
        if not low:
            return question
        listing = ", ".join(f"{m.name} ({m.stock} units)" for m in low)
        context = (
            f"Context: Here are the medicines currently low in stock "
            f"(less than {self.inventory.low_stock_threshold} units): {listing}."
        )
        return f"{context}\n\nUser query: {question}"

    def ask(self, question: str) -> str:
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question is empty.")

        payload = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": self.build_prompt(question)}]}],
        }
        try:
            answer = self._generate(payload)
        except (requests.RequestException, ValueError, AssistantUnavailableError) as e:
            log.warning("assistant_failed model=%s error=%s", self.model, e)
            return FALLBACK_REPLY
        log.info("assistant_answered model=%s chars=%s", self.model, len(answer))
        return answer

    def extract_medicines_from_image(self, image: bytes, mime_type: str) -> list[dict]:
        """
        Returns raw rows as the model produced them; callers validate each row.
        """
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": OCR_PROMPT},
                        {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(image).decode("ascii")}},
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": OCR_SCHEMA,
            },
        }
        try:
            rows = json.loads(self._generate(payload).strip())
        except (requests.RequestException, ValueError) as e:
            log.warning("assistant_ocr_failed model=%s error=%s", self.model, e)
            raise AssistantUnavailableError(
                f"Failed to process image: {e}. Please ensure it's clear and retry."
            ) from e

        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise AssistantUnavailableError("Image extraction did not return a list of medicines.")
        log.info("assistant_ocr_extracted rows=%s", len(rows))
        return rows
