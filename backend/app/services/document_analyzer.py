"""
Document Analyzer — Gemini multimodal review of verification documents.
Produces a structured verdict (confidence, flags, fraud signals, tampering
score). Never raises: upstream failures degrade to a "flagged" verdict that
routes the record to human review. Performs no database writes.
"""
import json
import mimetypes
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import google.generativeai as genai
import httpx

from app.config import Settings
from app.utils.logger import get_logger
from app.utils.validators import clamp_score, missing_required_documents

logger = get_logger("ANALYZER")

VERDICT_STATUSES = ("passed", "flagged", "failed")
RECOMMENDATIONS = ("approved", "rejected", "needs_review")

MISSING_DOCUMENTS_FLAG = "Missing required documents"
ANALYSIS_FAILED_FLAG = "AI analysis failed"


@dataclass(frozen=True)
class DocumentRef:
    """A document the model can retrieve: its type and a short-lived URL."""
    type: str
    url: str
    file_name: str = ""

    @property
    def mime_type(self) -> str:
        guessed, _ = mimetypes.guess_type(self.file_name or "")
        return guessed or "image/jpeg"


class AnalyzerTransport(Protocol):
    def complete(self, prompt: str, documents: list[DocumentRef], timeout: float) -> str:
        """Send the prompt and documents to the model; return its raw text."""
        ...


class GeminiTransport:
    """Downloads each document and sends it inline to Gemini."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._model = None

    def _get_model(self):
        """Lazily initialize the Gemini model."""
        if self._model is None and self.settings.GEMINI_API_KEY:
            genai.configure(api_key=self.settings.GEMINI_API_KEY)
            self._model = genai.GenerativeModel(
                model_name=self.settings.GEMINI_MODEL,
                generation_config={
                    "temperature": 0,
                    "top_p": 1,
                    "max_output_tokens": self.settings.AI_MAX_OUTPUT_TOKENS,
                    "response_mime_type": "application/json",
                },
            )
        return self._model

    @property
    def available(self) -> bool:
        return bool(self.settings.GEMINI_API_KEY)

    def complete(self, prompt: str, documents: list[DocumentRef], timeout: float) -> str:
        model = self._get_model()
        if model is None:
            raise RuntimeError("GEMINI_API_KEY is not configured")

        deadline = time.monotonic() + timeout
        parts: list = [prompt]
        with httpx.Client(follow_redirects=True) as client:
            for doc in documents:
                response = client.get(doc.url, timeout=_remaining(deadline))
                response.raise_for_status()
                content_type = response.headers.get("content-type", "").split(";")[0].strip()
                parts.append({"mime_type": content_type or doc.mime_type, "data": response.content})

        result = model.generate_content(
            contents=parts,
            request_options={"timeout": _remaining(deadline)},
        )
        return result.text


def _remaining(deadline: float) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("AI analysis deadline exceeded")
    return left


ANALYSIS_PROMPT = """You are a document verification specialist for The Rail Exchange, a rail industry marketplace.
Verify {kind} identity and business documents for authenticity, validity, and fraud.

ACCOUNT: "{name}" ({email})
DOCUMENTS (in order): {document_list}

STRICT RULES:
1. Extract text EXACTLY as written on the documents.
2. If a field is not clearly visible, return null for that field.
3. DO NOT guess or infer any data.
4. Return ONLY a JSON object, no markdown, no explanation.

Respond with:
{{
  "status": "passed" | "flagged" | "failed",
  "confidence": 0-100,
  "flags": ["concerns"],
  "extractedFields": {{"name": "", "businessName": "", "licenseNumber": "", "ein": "", "expirationDate": "", "address": ""}},
  "nameMatchScore": 0-100,
  "documentExpired": false,
  "tamperingScore": 0-100,
  "tamperingIndicators": [],
  "fraudSignals": [],
  "recommendation": "approved" | "rejected" | "needs_review",
  "notes": "short explanation"
}}"""


def build_prompt(kind: str, name: str, email: str, documents: list[DocumentRef]) -> str:
    document_list = ", ".join(f"{i + 1}. {d.type}" for i, d in enumerate(documents))
    return ANALYSIS_PROMPT.format(kind=kind, name=name, email=email, document_list=document_list)


def parse_model_json(raw_text: Optional[str]) -> dict:
    """Parse the model's JSON, tolerating markdown code fences.

    Raises:
        ValueError: If the text is empty or not a JSON object.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("AI returned an empty response")

    cleaned = raw_text.strip()
    if "```json" in cleaned:
        cleaned = cleaned.split("```json")[1].split("```")[0].strip()
    elif "```" in cleaned:
        cleaned = cleaned.split("```")[1].split("```")[0].strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"AI returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("AI response is not a JSON object")
    return parsed


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def _base_verdict(now: datetime) -> dict:
    return {
        "status": "flagged",
        "confidence": 0,
        "flags": [],
        "extractedFields": {},
        "nameMatchScore": 0,
        "documentExpired": False,
        "tamperingScore": 0,
        "tamperingIndicators": [],
        "fraudSignals": [],
        "recommendation": "needs_review",
        "notes": "",
        "processedAt": now.isoformat(),
    }


def normalize_verdict(parsed: dict, now: datetime) -> dict:
    """Coerce a parsed model response into a verdict with clamped scores."""
    verdict = _base_verdict(now)
    status = str(parsed.get("status", "")).lower()
    verdict["status"] = status if status in VERDICT_STATUSES else "flagged"
    verdict["confidence"] = clamp_score(parsed.get("confidence"), default=50)
    verdict["flags"] = _string_list(parsed.get("flags"))

    fields = parsed.get("extractedFields") or parsed.get("extractedData") or {}
    if isinstance(fields, dict):
        verdict["extractedFields"] = {str(k): str(v) for k, v in fields.items() if v not in (None, "")}

    verdict["nameMatchScore"] = clamp_score(parsed.get("nameMatchScore"), default=0)
    verdict["documentExpired"] = bool(parsed.get("documentExpired", False))
    verdict["tamperingScore"] = clamp_score(parsed.get("tamperingScore"), default=50)
    verdict["tamperingIndicators"] = _string_list(parsed.get("tamperingIndicators"))
    verdict["fraudSignals"] = _string_list(parsed.get("fraudSignals"))

    recommendation = str(parsed.get("recommendation", "")).lower()
    verdict["recommendation"] = recommendation if recommendation in RECOMMENDATIONS else "needs_review"
    verdict["notes"] = str(parsed.get("notes") or "AI analysis complete.")

    if verdict["documentExpired"] and "Document appears to be expired" not in verdict["flags"]:
        verdict["flags"].append("Document appears to be expired")
    return verdict


def missing_documents_verdict(now: datetime) -> dict:
    verdict = _base_verdict(now)
    verdict.update(
        status="failed",
        confidence=100,
        flags=[MISSING_DOCUMENTS_FLAG],
        tamperingIndicators=["Unable to analyze"],
        fraudSignals=["Incomplete document submission"],
        recommendation="rejected",
        notes="Required documents not provided.",
    )
    return verdict


def degraded_verdict(error: str, now: datetime) -> dict:
    verdict = _base_verdict(now)
    verdict.update(
        status="flagged",
        confidence=0,
        flags=[ANALYSIS_FAILED_FLAG],
        tamperingIndicators=["Unable to analyze"],
        notes=f"AI unavailable: {error}",
    )
    return verdict


def forced_escalation_verdict(hours: int, now: datetime) -> dict:
    verdict = _base_verdict(now)
    verdict.update(
        status="failed",
        confidence=0,
        flags=[f"Automatic escalation - exceeded {hours} hour processing time"],
        notes="AI analysis did not complete in time; forwarded for manual review.",
    )
    return verdict


class DocumentAnalyzer:
    """Stateless verdict producer with an injectable model transport."""

    def __init__(self, settings: Settings, transport: AnalyzerTransport | None = None):
        self.settings = settings
        self.transport = transport or GeminiTransport(settings)

    def analyze(
        self,
        kind: str,
        documents: list[DocumentRef],
        subject_name: str,
        subject_email: str,
        now: datetime | None = None,
    ) -> dict:
        """Analyze a document set and return a verdict dict.

        Args:
            kind: "seller" or "contractor"; selects the credential documents.
            documents: Ordered document references with retrievable URLs.
            subject_name: Declared account name to match against documents.
            subject_email: Declared account email.
            now: Clock override for the verdict's processedAt.

        Returns:
            Verdict with status, confidence, flags, extractedFields,
            nameMatchScore, tamperingScore and fraudSignals.
        """
        now = now or datetime.utcnow()

        missing = missing_required_documents(kind, [d.type for d in documents])
        if missing:
            logger.info(f"Skipping model call, missing: {', '.join(missing)}")
            return missing_documents_verdict(now)

        prompt = build_prompt(kind, subject_name, subject_email, documents)
        try:
            raw_text = self.transport.complete(prompt, documents, self.settings.AI_TIMEOUT_SECONDS)
            parsed = parse_model_json(raw_text)
        except Exception as e:
            logger.warning(f"Analysis degraded to manual review: {type(e).__name__}: {e}")
            return degraded_verdict(str(e) or type(e).__name__, now)

        verdict = normalize_verdict(parsed, now)
        logger.info(f"Verdict {verdict['status']} (confidence {verdict['confidence']:.0f})")
        return verdict
