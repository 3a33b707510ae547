"""Self-critique for looping nodes.

The critic asks the model whether an output meets the user's success
criteria and, if not, for a better prompt. Malformed verdicts count as a
pass: a retry loop must never keep spinning because the critic cannot
produce JSON.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel

from noodle.backends.completion import CompletionBackend
from noodle.graph.prompts import CRITIQUE_PROMPT_TEMPLATE, CRITIQUE_SYSTEM_PROMPT
from noodle.utils.logging import get_logger
from noodle.utils.tracing import traceable

logger = get_logger(__name__)

MAX_OUTPUT_CHARS = 5000
PARSE_ERROR_REASON = "parse error - assuming pass"


class CritiqueVerdict(BaseModel):
    passed: bool
    reason: str
    refined_prompt: str


def strip_code_fences(raw_text: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper if the model added one."""

    text = raw_text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?", "", text, flags=re.IGNORECASE).strip()
        text = text.rstrip("`").strip()
    return text


def parse_verdict(raw_text: str, original_prompt: str) -> CritiqueVerdict:
    """Decode the critic's JSON; fall back to a pass on anything malformed."""

    try:
        payload: Any = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError:
        payload = None

    if not isinstance(payload, dict) or not isinstance(payload.get("pass"), bool):
        logger.warning(
            "Critique returned malformed verdict; assuming pass",
            extra={"context": {"raw": raw_text[:200]}},
        )
        return CritiqueVerdict(passed=True, reason=PARSE_ERROR_REASON, refined_prompt=original_prompt)

    refined = payload.get("refinedPrompt")
    if not isinstance(refined, str) or not refined.strip():
        refined = original_prompt

    return CritiqueVerdict(
        passed=payload["pass"],
        reason=str(payload.get("reason", "")),
        refined_prompt=refined,
    )


class CritiqueEngine:
    """Evaluates node output against a success criterion."""

    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend

    @traceable(name="critique", run_type="chain")
    async def critique(self, original_prompt: str, output: str, criteria: str) -> CritiqueVerdict:
        message = CRITIQUE_PROMPT_TEMPLATE.format(
            output=json.dumps(output[:MAX_OUTPUT_CHARS]),
            criteria=json.dumps(criteria),
            prompt=json.dumps(original_prompt),
        )
        completion = await self.backend.complete([], message, CRITIQUE_SYSTEM_PROMPT)
        verdict = parse_verdict(completion.text, original_prompt)

        logger.info(
            "Critique verdict",
            extra={"context": {"passed": verdict.passed, "reason": verdict.reason[:200]}},
        )
        return verdict
