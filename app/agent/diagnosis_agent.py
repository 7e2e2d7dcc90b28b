import asyncio
import logging
from functools import lru_cache
from typing import List, Sequence

import groq  # type: ignore
from langchain_core.messages import BaseMessage  # type: ignore
from langchain_groq import ChatGroq  # type: ignore

from app.config import (
    DIAGNOSIS_TIMEOUT_SECONDS,
    GROQ_API_KEY,
    GROQ_MODEL,
    GROQ_TEMPERATURE,
)
from app.errors import DiagnosisProviderError

logger = logging.getLogger("cardiag.diagnosis_agent")

# Worth one more try: network trouble, rate limiting, provider 5xx
TRANSIENT_ERRORS = (
    groq.APIConnectionError,
    groq.RateLimitError,
    groq.InternalServerError,
)


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    # langchain content blocks
    chunks: List[str] = []
    for block in content or []:
        if isinstance(block, str):
            chunks.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            chunks.append(block.get("text", ""))
    return "".join(chunks)


class GroqDiagnosisProvider:
    """Sends a prompt to the chat model and returns its raw text reply."""

    def __init__(self, llm, timeout: float = DIAGNOSIS_TIMEOUT_SECONDS, retries: int = 1):
        self.llm = llm
        self.timeout = timeout
        self.retries = retries

    async def generate(self, messages: Sequence[BaseMessage]) -> str:
        attempts = self.retries + 1

        for attempt in range(1, attempts + 1):
            try:
                return await self._generate_once(messages)
            except DiagnosisProviderError as exc:
                if not exc.transient or attempt == attempts:
                    raise
                logger.warning(
                    "Diagnosis call failed (attempt %d/%d), retrying: %s",
                    attempt, attempts, exc.message,
                )

        raise DiagnosisProviderError("Diagnosis provider gave no response")

    async def _generate_once(self, messages: Sequence[BaseMessage]) -> str:
        try:
            response = await asyncio.wait_for(
                self.llm.ainvoke(list(messages)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise DiagnosisProviderError(
                "Diagnosis provider timed out", status_code=504, transient=True
            )
        except TRANSIENT_ERRORS as exc:
            logger.warning("Diagnosis provider unavailable: %s", exc)
            raise DiagnosisProviderError(
                "Diagnosis provider unavailable", transient=True
            ) from exc
        except groq.APIStatusError as exc:
            raise DiagnosisProviderError(
                f"Diagnosis provider rejected the request ({exc.status_code})"
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected diagnosis provider failure: %s", exc)
            raise DiagnosisProviderError("Diagnosis provider error") from exc

        text = _content_text(getattr(response, "content", response))
        if not text.strip():
            raise DiagnosisProviderError("Diagnosis provider returned an empty response")

        return text


@lru_cache(maxsize=1)
def get_diagnosis_provider() -> GroqDiagnosisProvider:
    if not GROQ_API_KEY:
        raise DiagnosisProviderError("GROQ_API_KEY not set", status_code=503)

    llm = ChatGroq(
        api_key=GROQ_API_KEY,
        model=GROQ_MODEL,
        temperature=GROQ_TEMPERATURE,
        max_retries=0,
    )
    logger.info("Diagnosis provider ready (model=%s)", GROQ_MODEL)
    return GroqDiagnosisProvider(llm)
