"""AI scoring of an application against its job posting via Claude.

The model is asked for a single JSON object and its answer is turned into an
``EvaluationResult``. Anything that keeps us from a usable score (transport
error, timeout, garbage output) is reported as ``DownstreamUnavailableError``
so the queue can retry the job later.
"""

import json
from typing import Any, Dict, Optional

import structlog
from anthropic import APIError, APITimeoutError, AsyncAnthropic

from api.middleware.error_handler import DownstreamUnavailableError
from api.services.evaluation_service import EvaluationResult
from processor.config import settings

logger = structlog.get_logger()

SERVICE_NAME = "ai-scoring"

SCORING_PROMPT = """You are screening a job application.

Score how well the candidate fits the job posting on a scale of 0 to 100.

## Job posting
{posting}

## Candidate
{candidate}

## Candidate message
{message}

Respond with a single JSON object and nothing else:
{{
  "overallScore": <number 0-100>,
  "categoryScores": {{"skills": <0-100>, "experience": <0-100>, "education": <0-100>}},
  "recommendation": "ACCEPT" | "REJECT" | "REVIEW" | "FURTHER_INFO",
  "justification": "<two or three sentences>",
  "strengths": ["..."],
  "weaknesses": ["..."]
}}
"""


class ScoringClient:
    """Thin wrapper around the Anthropic Messages API."""

    def __init__(self, client: Optional[AsyncAnthropic] = None):
        self.model = settings.AI_MODEL
        self.max_tokens = settings.AI_MAX_TOKENS
        # The job queue owns retries
        self.client = client or AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.AI_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def score(
        self,
        candidate: Dict[str, Any],
        posting: Dict[str, Any],
        message: Optional[str] = None,
    ) -> EvaluationResult:
        """Score one application.

        Args:
            candidate: Candidate scoring input (profile fields)
            posting: Job posting scoring input
            message: Optional note the candidate attached

        Returns:
            EvaluationResult with clamped scores

        Raises:
            DownstreamUnavailableError: On API failure, timeout or unparsable output
        """
        prompt = SCORING_PROMPT.format(
            posting=json.dumps(posting, indent=2, default=str),
            candidate=json.dumps(candidate, indent=2, default=str),
            message=message or "None provided",
        )

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except APITimeoutError as e:
            logger.error("AI scoring timed out", timeout=settings.AI_TIMEOUT_SECONDS)
            raise DownstreamUnavailableError(SERVICE_NAME, "request timed out") from e
        except APIError as e:
            logger.error("Claude API error during scoring", error=str(e))
            raise DownstreamUnavailableError(SERVICE_NAME, str(e)) from e

        raw_response = response.content[0].text if response.content else ""
        result = self._parse_scoring_response(raw_response)

        logger.info(
            "Application scored",
            overall_score=result.overall_score,
            recommendation=result.recommendation.value,
            model=self.model,
        )
        return result

    def _parse_scoring_response(self, response: str) -> EvaluationResult:
        try:
            data = json.loads(self._extract_json(response))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to parse scoring response", error=str(e))
            raise DownstreamUnavailableError(SERVICE_NAME, "unparsable scoring response") from e

        if not isinstance(data, dict) or "overallScore" not in data:
            raise DownstreamUnavailableError(SERVICE_NAME, "scoring response missing overallScore")

        # overallScore must be numeric
        try:
            float(data["overallScore"])
        except (TypeError, ValueError) as e:
            logger.warning("Non-numeric overallScore in scoring response", value=data["overallScore"])
            raise DownstreamUnavailableError(SERVICE_NAME, "scoring response has non-numeric overallScore") from e

        result = EvaluationResult.from_payload(data, model_used=self.model)
        # Always record the configured model, not whatever the answer claims
        result.model_used = self.model
        result.raw_response = response
        return result

    @staticmethod
    def _extract_json(text: str) -> str:
        """Extract a JSON object from a response that may contain other text."""
        start = text.find("{")
        end = text.rfind("}") + 1

        if start != -1 and end > start:
            return text[start:end]

        raise ValueError("No JSON found in response")
