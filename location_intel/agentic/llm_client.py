"""
LLM Client - Unified async wrapper for OpenAI, Anthropic and Groq.

Provides:
- Single-shot completions (no retries; a failed call is reported to the caller)
- A provider-neutral tool-calling conversation for agent loops
- Token counting and cost tracking

Groq exposes an OpenAI-compatible endpoint, so it runs through the
OpenAI SDK with a different base URL.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from location_intel.core.api_errors import LLMNotConfiguredError

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

SUPPORTED_PROVIDERS = ("openai", "anthropic", "groq")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
    "groq": "llama-3.3-70b-versatile",
}

# Pricing per 1M tokens
MODEL_PRICING = {
    # OpenAI
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    # Anthropic
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    # Groq
    "llama-3.3-70b-versatile": {"input": 0.59, "output": 0.79},
    "llama-3.1-8b-instant": {"input": 0.05, "output": 0.08},
}


@dataclass
class LLMResponse:
    """Response from LLM call."""

    content: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    model: str
    cost_usd: float


@dataclass
class ToolSpec:
    """A function the model may call, described by a JSON schema."""

    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class AgentTurn:
    """One model turn inside a tool-calling conversation."""

    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class Conversation:
    """
    Multi-turn exchange with tool calling, independent of the provider.

    Usage:
        conversation = client.start_conversation(system_prompt, prompt, tools)
        turn = await conversation.step()
        while turn.tool_calls:
            conversation.add_tool_results([(call, run(call)) for call in turn.tool_calls])
            turn = await conversation.step()
    """

    def __init__(
        self,
        llm: "LLMClient",
        system_prompt: str,
        prompt: str,
        tools: List[ToolSpec],
        temperature: float = 0.0,
    ):
        self.llm = llm
        self.system_prompt = system_prompt
        self.tools = tools
        self.temperature = temperature
        self.messages: List[Dict[str, Any]] = []
        if llm.uses_openai_protocol:
            self.messages.append({"role": "system", "content": system_prompt})
        self.messages.append({"role": "user", "content": prompt})

    async def step(self) -> AgentTurn:
        """Send the conversation so far and record the model's reply."""
        if self.llm.uses_openai_protocol:
            turn = await self._openai_step()
        else:
            turn = await self._anthropic_step()
        self.llm._track(turn.input_tokens, turn.output_tokens)
        return turn

    def add_tool_results(self, results: List[Tuple[ToolCall, Any]]) -> None:
        """
        Append tool outputs for the calls of the previous turn.

        Args:
            results: (ToolCall, JSON-serializable result) pairs
        """
        if self.llm.uses_openai_protocol:
            for call, result in results:
                self.messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result, ensure_ascii=False),
                })
        else:
            self.messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": json.dumps(result, ensure_ascii=False),
                    }
                    for call, result in results
                ],
            })

    async def _openai_step(self) -> AgentTurn:
        client = self.llm._get_client()
        kwargs: Dict[str, Any] = {
            "model": self.llm.model,
            "messages": self.messages,
            "max_tokens": self.llm.max_tokens,
            "temperature": self.temperature,
        }
        if self.tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in self.tools
            ]

        response = await client.chat.completions.create(**kwargs)
        message = response.choices[0].message

        calls = []
        for raw in message.tool_calls or []:
            try:
                arguments = json.loads(raw.function.arguments or "{}")
            except json.JSONDecodeError:
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            calls.append(ToolCall(id=raw.id, name=raw.function.name, arguments=arguments))

        assistant: Dict[str, Any] = {"role": "assistant", "content": message.content or ""}
        if calls:
            assistant["tool_calls"] = [
                {
                    "id": raw.id,
                    "type": "function",
                    "function": {"name": raw.function.name, "arguments": raw.function.arguments},
                }
                for raw in message.tool_calls
            ]
        self.messages.append(assistant)

        usage = response.usage
        return AgentTurn(
            text=message.content or "",
            tool_calls=calls,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def _anthropic_step(self) -> AgentTurn:
        client = self.llm._get_client()
        kwargs: Dict[str, Any] = {
            "model": self.llm.model,
            "max_tokens": self.llm.max_tokens,
            "system": self.system_prompt,
            "messages": self.messages,
            "temperature": self.temperature,
        }
        if self.tools:
            kwargs["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in self.tools
            ]

        response = await client.messages.create(**kwargs)

        texts = []
        calls = []
        content = []
        for block in response.content or []:
            if block.type == "text":
                texts.append(block.text)
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))
                content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                })
        self.messages.append({"role": "assistant", "content": content})

        usage = response.usage
        return AgentTurn(
            text="\n".join(texts),
            tool_calls=calls,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
        )


class LLMClient:
    """
    Unified async LLM client supporting OpenAI, Anthropic and Groq.

    Usage:
        client = LLMClient(provider="groq", api_key="gsk_...")
        response = await client.complete("Summarize this location...")
    """

    def __init__(
        self,
        provider: str = "openai",
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 800,
        temperature: float = 0.1,
    ):
        """
        Initialize LLM client.

        Args:
            provider: "openai", "anthropic" or "groq"
            api_key: API key for the provider
            model: Model name (uses provider default when omitted)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0-1)
        """
        self.provider = provider.lower()
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.model = model or DEFAULT_MODELS.get(self.provider, DEFAULT_MODELS["openai"])

        self._client = None
        self._total_tokens_used = 0
        self._total_cost_usd = 0.0

    @property
    def is_available(self) -> bool:
        return self.provider in SUPPORTED_PROVIDERS and bool(self.api_key)

    @property
    def uses_openai_protocol(self) -> bool:
        return self.provider in ("openai", "groq")

    def _get_client(self):
        """Get or create the SDK client."""
        if not self.is_available:
            raise LLMNotConfiguredError(
                f"LLM provider '{self.provider}' not available; check the API key"
            )
        if self._client is None:
            if self.provider == "openai":
                self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
            elif self.provider == "groq":
                self._client = AsyncOpenAI(api_key=self.api_key, base_url=GROQ_BASE_URL, max_retries=0)
            else:
                self._client = AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def _calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        pricing = MODEL_PRICING.get(model, {"input": 0.0, "output": 0.0})
        input_cost = (input_tokens / 1_000_000) * pricing["input"]
        output_cost = (output_tokens / 1_000_000) * pricing["output"]
        return input_cost + output_cost

    def _track(self, input_tokens: int, output_tokens: int) -> float:
        cost = self._calculate_cost(self.model, input_tokens, output_tokens)
        self._total_tokens_used += input_tokens + output_tokens
        self._total_cost_usd += cost
        return cost

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send a single completion request.

        Args:
            prompt: User prompt
            system_prompt: Optional system message
            max_tokens: Override the client's output token limit

        Returns:
            LLMResponse with content and usage stats

        Raises:
            LLMNotConfiguredError: If the provider has no API key
        """
        client = self._get_client()
        limit = max_tokens or self.max_tokens

        if self.uses_openai_protocol:
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=limit,
                temperature=self.temperature,
            )
            content = response.choices[0].message.content or ""
            input_tokens = response.usage.prompt_tokens if response.usage else 0
            output_tokens = response.usage.completion_tokens if response.usage else 0
        else:
            kwargs: Dict[str, Any] = {
                "model": self.model,
                "max_tokens": limit,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system_prompt:
                kwargs["system"] = system_prompt
            response = await client.messages.create(**kwargs)
            content = "".join(
                block.text for block in response.content or [] if block.type == "text"
            )
            input_tokens = response.usage.input_tokens if response.usage else 0
            output_tokens = response.usage.output_tokens if response.usage else 0

        cost = self._track(input_tokens, output_tokens)
        return LLMResponse(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            model=self.model,
            cost_usd=cost,
        )

    def start_conversation(
        self,
        system_prompt: str,
        prompt: str,
        tools: List[ToolSpec],
        temperature: float = 0.0,
    ) -> Conversation:
        """Begin a tool-calling conversation (raises if not configured)."""
        self._get_client()
        return Conversation(self, system_prompt, prompt, tools, temperature=temperature)

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used

    @property
    def total_cost_usd(self) -> float:
        return self._total_cost_usd

    async def aclose(self) -> None:
        """Close the SDK client and its connection pool, if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None


def build_llm_client(settings) -> Optional[LLMClient]:
    """
    Build an LLM client from settings.

    LLM_PROVIDER forces a provider; otherwise the first configured key wins
    in the order groq, openai, anthropic.

    Returns:
        LLMClient if an API key is available, None otherwise
    """
    keys = {
        "groq": settings.get_groq_api_key(),
        "openai": settings.get_openai_api_key(),
        "anthropic": settings.get_anthropic_api_key(),
    }

    provider = settings.llm_provider
    if provider is None:
        provider = next((name for name, key in keys.items() if key), None)
        if provider is None:
            logger.info("No LLM API key configured; AI classification and insights disabled")
            return None

    api_key = keys.get(provider)
    if not api_key:
        logger.warning(f"No API key configured for {provider}")
        return None

    return LLMClient(
        provider=provider,
        api_key=api_key,
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
    )
