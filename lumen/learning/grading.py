"""
Assessment grader backed by a hosted language model.

Grades free-text submissions and runs the adaptive examiner that decides
whether a learner has passed a unit's test. Quota and billing failures
(HTTP 429 / 402) come back as degraded responses rather than errors and are
not retried automatically. Without an API key the grader answers with
deterministic demo responses so the flow stays usable offline.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from config import Settings, get_settings
from lumen.core.models import Grade, GradeCriterion, GradeFeedback

QUOTA_STATUS_CODES = (402, 429)

_FENCE_RE = re.compile(r"```(?:json)?")

GRADER_PROMPT = (
    'Grade this student response for Task: "{task}". Response: "{response}". '
    "Return JSON only: {{ score: number, feedback: {{ overall: string, criteria: [] }}, "
    "reflection_prompt: string }}"
)

EXAMINER_INSTRUCTION = """
You are an adaptive Examiner for an industrial training platform.
Your Goal: Verify the user understands the MATERIAL provided below.

MATERIAL: "{material}"

Rules:
1. If the user's answer is WRONG or INCOMPLETE: explain the concept they missed, then ASK A NEW QUESTION. Do NOT pass them.
2. If the user's answer is CORRECT: congratulate them briefly and confirm they have passed the module.
3. Output JSON ONLY: {{ "text": "Your response to the user", "passed": boolean }}
"""


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" or "model"
    text: str


@dataclass(frozen=True)
class ExaminerReply:
    text: str
    passed: bool
    degraded: bool = False


class LanguageModelError(Exception):
    """Raised internally when the model call fails."""

    def __init__(self, message: str, quota: bool = False):
        super().__init__(message)
        self.quota = quota


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    return _FENCE_RE.sub("", text).strip()


def demo_grade() -> Grade:
    return Grade(
        score=85,
        feedback=GradeFeedback(
            overall="Solid understanding of the core concept (Demo Mode).",
            criteria=[
                GradeCriterion(name="Accuracy", score=90, explanation="Calculation is correct."),
                GradeCriterion(name="Method", score=80,
                               explanation="Steps were logical but could be more concise."),
            ],
        ),
        reflection_prompt="How would this change if the pressure variable doubled?",
        latency_ms=450,
    )


def degraded_grade(message: str) -> Grade:
    return Grade(score=0, feedback=GradeFeedback(overall=message), reflection_prompt="N/A", degraded=True)


class AssessmentGrader:
    """Grading and examination through the language model REST API."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-2.5-flash",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        if not api_key:
            logger.warning("Language model API key not found - grading runs in demo mode")

    @classmethod
    def from_settings(cls, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        settings = settings or get_settings()
        return cls(
            api_key=None if settings.demo_mode else settings.llm_api_key,
            api_url=settings.llm_api_url,
            model=settings.llm_model,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _generate(
        self,
        turns: list[ChatTurn],
        system_instruction: str | None = None,
        json_output: bool = True,
    ) -> str:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

        payload: dict[str, Any] = {
            "contents": [{"role": t.role, "parts": [{"text": t.text}]} for t in turns],
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if json_output:
            payload["generationConfig"] = {"responseMimeType": "application/json"}

        try:
            response = await self._client.post(
                f"{self.api_url}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise LanguageModelError(f"connection error: {e}") from e

        if response.status_code in QUOTA_STATUS_CODES:
            raise LanguageModelError(f"HTTP {response.status_code}", quota=True)
        if response.status_code >= 400:
            raise LanguageModelError(f"HTTP {response.status_code}")

        try:
            candidates = response.json().get("candidates", [])
            parts = candidates[0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (ValueError, LookupError, AttributeError, TypeError) as e:
            raise LanguageModelError(f"unexpected response shape: {e}") from e

    # ========================================
    # Operations
    # ========================================

    async def ping(self) -> bool:
        """Lightweight call to verify the key works."""
        if not self.enabled:
            return False
        try:
            await self._generate([ChatTurn("user", "ping")], json_output=False)
            return True
        except LanguageModelError as e:
            if e.quota:
                logger.error("Billing or quota error: check the language model billing setup")
            return False

    async def grade(self, task: str, response: str) -> Grade:
        """Grade a free-text response; never raises."""
        if not self.enabled:
            return demo_grade()

        started = time.monotonic()
        try:
            text = await self._generate([ChatTurn("user", GRADER_PROMPT.format(task=task, response=response))])
            data = json.loads(strip_code_fences(text) or "{}")
            grade = Grade.model_validate(data)
        except LanguageModelError as e:
            logger.warning(f"Grading failed: {e}")
            if e.quota:
                return degraded_grade("Grading Service Busy (Quota Limit). Try again shortly.")
            return degraded_grade("System Error during grading.")
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            logger.warning(f"Grader returned unusable JSON: {e}")
            return degraded_grade("System Error during grading.")

        return grade.model_copy(update={"latency_ms": int((time.monotonic() - started) * 1000)})

    async def examine(self, history: list[ChatTurn], answer: str, material: str) -> ExaminerReply:
        """Run one examiner turn; ``passed`` tells the flow to complete the unit."""
        if not self.enabled:
            return ExaminerReply(
                text="Demo Mode: Excellent answer! You have demonstrated mastery of the subject.",
                passed=True,
            )

        try:
            text = await self._generate(
                [*history, ChatTurn("user", answer)],
                system_instruction=EXAMINER_INSTRUCTION.format(material=material or "Basic concepts."),
            )
            data = json.loads(strip_code_fences(text) or "{}")
            return ExaminerReply(text=str(data.get("text", "")), passed=bool(data.get("passed", False)))
        except LanguageModelError as e:
            logger.warning(f"Examiner failed: {e}")
            if e.quota:
                return ExaminerReply(
                    text="Error: System Overload (Quota Exceeded). Please try again later.",
                    passed=False,
                    degraded=True,
                )
            return ExaminerReply(text="System connection error. Please try again.", passed=False, degraded=True)
        except (ValueError, AttributeError) as e:
            logger.warning(f"Examiner returned unusable JSON: {e}")
            return ExaminerReply(text="System connection error. Please try again.", passed=False, degraded=True)
