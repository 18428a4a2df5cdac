"""
Ordino - Base Agent Configuration

LLM abstraction layer supporting multiple providers (OpenAI, Anthropic, Gemini),
optionally routed through an OpenAI-compatible gateway.
"""

import json
import logging
import os
from typing import Optional

from crewai import Agent, LLM, Task

from config.settings import settings, LLMProvider
from services.errors import UpstreamError

logger = logging.getLogger("ordino.agents")


def get_llm(
    provider: Optional[LLMProvider] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None
) -> LLM:
    """
    Get an LLM instance for the specified or configured provider.

    Args:
        provider: Override the configured provider
        model: Override the configured model
        temperature: Override the configured temperature

    Returns:
        Configured LLM instance for CrewAI
    """
    provider = provider or settings.llm_provider
    model = model or settings.default_model
    temperature = temperature if temperature is not None else settings.llm_temperature

    # CrewAI reads provider keys from the environment
    env_keys = {
        LLMProvider.OPENAI: ("OPENAI_API_KEY", settings.openai_api_key),
        LLMProvider.ANTHROPIC: ("ANTHROPIC_API_KEY", settings.anthropic_api_key),
        LLMProvider.GEMINI: ("GOOGLE_API_KEY", settings.google_api_key),
    }
    if provider not in env_keys:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    env_name, api_key = env_keys[provider]
    if api_key:
        os.environ[env_name] = api_key

    prefix = f"{provider.value}/"
    kwargs = {
        "model": model if model.startswith(prefix) else f"{prefix}{model}",
        "temperature": temperature,
    }
    if settings.llm_base_url:
        kwargs["base_url"] = settings.llm_base_url
    return LLM(**kwargs)


default_llm = None


def get_default_llm() -> LLM:
    """Get the default LLM instance (lazy initialization)."""
    global default_llm
    if default_llm is None:
        default_llm = get_llm()
    return default_llm


AGENT_VERBOSE = settings.api_env == "development"


def _upstream_error(e: Exception) -> UpstreamError:
    """
    Translate a provider failure into UpstreamError.

    Quota failures (429 rate limited, 402 out of credits) keep their status
    code so callers can stop issuing further calls.
    """
    status_code = getattr(e, "status_code", None)
    logger.warning(f"LLM call failed ({status_code}): {e}")
    if status_code == 429:
        return UpstreamError("Rate limit exceeded. Please try again in a moment.", 429)
    if status_code == 402:
        return UpstreamError("AI credits exhausted. Please add funds.", 402)
    return UpstreamError(f"AI request failed: {e}", status_code)


def run_task(agent: Agent, task: Task) -> str:
    """Execute a single agent task and return its raw output."""
    try:
        return str(agent.execute_task(task))
    except Exception as e:
        raise _upstream_error(e) from e


def call_llm(messages: list[dict], temperature: Optional[float] = None) -> str:
    """Send a chat transcript straight to the model, without an agent."""
    try:
        return get_llm(temperature=temperature).call(messages) or ""
    except Exception as e:
        raise _upstream_error(e) from e


def _strip_code_fence(output: str) -> str:
    if "```json" in output:
        start = output.find("```json") + 7
        end = output.find("```", start)
        return output[start:end].strip()
    if "```" in output:
        start = output.find("```") + 3
        end = output.find("```", start)
        return output[start:end].strip()
    return output.strip()


def validate_json_output(output: str, required_keys: list[str]) -> dict:
    """
    Validate and parse a JSON object from an agent.

    Args:
        output: Raw output string from agent
        required_keys: Keys that must be present in the output

    Returns:
        Parsed JSON dict

    Raises:
        ValueError: If output is not valid JSON or missing required keys
    """
    try:
        data = json.loads(_strip_code_fence(output))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON output: {e}")

    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")

    missing = [key for key in required_keys if key not in data]
    if missing:
        raise ValueError(f"Missing required keys in output: {missing}")

    return data


def parse_json_array(output: str) -> list:
    """
    Parse a JSON array from an agent, tolerating prose around it.

    Raises:
        ValueError: If no JSON array can be found
    """
    text = _strip_code_fence(output)
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end < start:
        raise ValueError("No JSON array in output")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON output: {e}")
    return data
