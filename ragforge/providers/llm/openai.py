"""
OpenAI LLM Provider (LangChain-based)

Implements LLMProvider interface using LangChain's ChatOpenAI.

Supports:
    - Structured output with Pydantic schemas (generate_structured)

Outage mapping:
    openai.APIConnectionError / AuthenticationError / PermissionDeniedError
    are re-raised as JudgeUnavailableError. openai.APITimeoutError becomes
    a builtin TimeoutError so the rerank stage treats it like any other
    timed-out batch.

Example:
    >>> provider = OpenAILLMProvider(api_key="sk-...", model="gpt-5-mini")

    >>> from pydantic import BaseModel
    >>> class Answer(BaseModel):
    ...     value: int
    >>> result = await provider.generate_structured("What is 2+2?", Answer)
    >>> print(result.value)
    4
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, TypeVar

from ragforge.errors import JudgeUnavailableError
from ragforge.providers.base import LLMProvider
from ragforge.types.results import UsageRecord
from ragforge.utils.telemetry import current_stage, record_usage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_openai import ChatOpenAI
    from pydantic import BaseModel

T = TypeVar("T", bound="BaseModel")

DEFAULT_MODEL = "gpt-5-mini"


def _get_chat_openai(
    api_key: str | None = None,
    model: str = DEFAULT_MODEL,
    temperature: float = 0.0,
) -> "ChatOpenAI":
    """
    Get a ChatOpenAI instance.

    Uses lazy import to avoid requiring langchain-openai unless actually used.

    Args:
        api_key: Optional API key. If not provided, uses OPENAI_API_KEY env var.
        model: Model name to use.
        temperature: Sampling temperature.

    Returns:
        ChatOpenAI instance

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import ChatOpenAI
    except ImportError:
        raise ImportError(
            "OpenAI provider requires the 'langchain-openai' package. "
            "Install with: pip install ragforge[openai]"
        )

    kwargs: dict[str, Any] = {"model": model, "temperature": temperature}
    if api_key:
        kwargs["api_key"] = api_key

    return ChatOpenAI(**kwargs)


def _build_messages(prompt: str, system: str | None) -> list["BaseMessage"]:
    from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

    messages: list[BaseMessage] = []
    if system:
        messages.append(SystemMessage(content=system))
    messages.append(HumanMessage(content=prompt))
    return messages


def _translate_openai_error(exc: Exception, model: str) -> Exception | None:
    """Map OpenAI client errors onto the judge error contract."""
    try:
        import openai
    except ImportError:
        return None

    if isinstance(exc, openai.APITimeoutError):
        return TimeoutError(f"OpenAI request timed out ({model})")
    if isinstance(
        exc,
        (openai.APIConnectionError, openai.AuthenticationError, openai.PermissionDeniedError),
    ):
        return JudgeUnavailableError(
            f"OpenAI judge unavailable ({model}): {exc}", provider="openai"
        )
    return None


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI LLM provider implementation using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use (default: "gpt-5-mini")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._api_key = api_key
        self._model = model

    @property
    def model_name(self) -> str:
        """Current model name."""
        return self._model

    def _record(self, operation: str, start_ns: int, ok: bool, **metadata: Any) -> None:
        record_usage(
            UsageRecord(
                provider="openai",
                model=self._model,
                operation=operation,
                stage=current_stage(),
                latency_ms=(time.perf_counter_ns() - start_ns) // 1_000_000,
                ok=ok,
                metadata=metadata,
            )
        )

    async def generate_structured(
        self,
        prompt: str,
        schema: type[T],
        *,
        system: str | None = None,
    ) -> T:
        """
        Generate a structured response matching a Pydantic schema.

        Uses LangChain's with_structured_output for reliable
        structured output that conforms to the provided schema.

        Args:
            prompt: User prompt/question
            schema: Pydantic model class defining expected structure
            system: Optional system message

        Returns:
            Instance of schema class populated with generated values
        """
        start = time.perf_counter_ns()

        client = _get_chat_openai(
            api_key=self._api_key,
            model=self._model,
            temperature=0.0,  # Deterministic for structured output
        )
        structured_client = client.with_structured_output(schema)

        try:
            result = await structured_client.ainvoke(_build_messages(prompt, system))
        except Exception as exc:
            self._record(
                "generate_structured", start, ok=False, error=type(exc).__name__
            )
            translated = _translate_openai_error(exc, self._model)
            if translated is not None:
                raise translated from exc
            raise

        self._record(
            "generate_structured",
            start,
            ok=True,
            schema=getattr(schema, "__name__", str(schema)),
        )
        return result  # type: ignore[return-value]

    def with_model(self, model: str) -> "OpenAILLMProvider":
        """
        Return a new provider instance with a different model.

        Args:
            model: New model name to use

        Returns:
            New OpenAILLMProvider with the specified model
        """
        return OpenAILLMProvider(api_key=self._api_key, model=model)
