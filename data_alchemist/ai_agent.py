import json
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from azure.ai.inference import ChatCompletionsClient
from azure.ai.inference.models import SystemMessage, UserMessage
from azure.core.credentials import AzureKeyCredential

from .config import Settings, get_settings
from .models import AIUnavailableError

logger = logging.getLogger(__name__)


class ChatAgent(Protocol):
    def chat_completion(self, system_prompt: str, user_prompt: str) -> str:
        ...


# --------- GPTAgent Wrapper ---------
class GPTAgent:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        if not settings.github_token:
            raise AIUnavailableError("Missing GITHUB_TOKEN env variable")

        self.client = ChatCompletionsClient(
            endpoint=settings.ai_endpoint,
            credential=AzureKeyCredential(settings.github_token)
        )
        self.model_name = settings.ai_model
        self.temperature = settings.ai_temperature
        self.max_tokens = settings.ai_max_tokens

    def chat_completion(self, system_prompt: str, user_prompt: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            UserMessage(content=user_prompt)
        ]

        response = self.client.complete(
            messages=messages,
            model=self.model_name,
            temperature=self.temperature,
            top_p=1.0,
            max_tokens=self.max_tokens
        )

        return response.choices[0].message.content


def create_agent(settings: Optional[Settings] = None) -> Optional[GPTAgent]:
    """Build the agent, or return None when AI features are not configured."""
    try:
        return GPTAgent(settings)
    except AIUnavailableError as e:
        logger.warning("AI features disabled: %s", e)
        return None


# --------- Result type ---------
@dataclass(frozen=True)
class AIResult:
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "AIResult":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str) -> "AIResult":
        return cls(error=reason)


def strip_code_fences(text: str) -> str:
    """Drop the ```json ... ``` wrapper models like to add around answers."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    start = 1
    while start < len(lines) and (lines[start].startswith("```") or not lines[start].strip()):
        start += 1
    end = len(lines) - 1
    while end > start and (lines[end].startswith("```") or not lines[end].strip()):
        end -= 1
    return "\n".join(lines[start:end + 1])


def extract_json(text: str, expected: type = dict) -> Any:
    """
    Pull the outermost JSON object (or array) out of a model answer.
    Raises ValueError when nothing of the expected shape is found.
    """
    text = strip_code_fences(text or "")
    opener, closer = ("{", "}") if expected is dict else ("[", "]")
    start = text.find(opener)
    end = text.rfind(closer)
    if start != -1 and end > start:
        parsed = json.loads(text[start:end + 1])
    else:
        parsed = json.loads(text)
    if not isinstance(parsed, expected):
        raise ValueError(f"expected a JSON {expected.__name__}, got {type(parsed).__name__}")
    return parsed


AI_THREAD_NAME = "ai-call"


def _run_in_background(fn, *args) -> Future:
    """Run fn on a daemon thread; an abandoned call never holds up interpreter exit."""
    future: Future = Future()

    def run():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)

    threading.Thread(target=run, name=AI_THREAD_NAME, daemon=True).start()
    return future


def ask_json(
    agent: Optional[ChatAgent],
    system_prompt: str,
    user_prompt: str,
    timeout: float,
    expected: type = dict,
) -> AIResult:
    """
    Call the agent on a worker thread and parse its answer as JSON.

    Outages, timeouts, empty answers and unparseable answers all come back
    as a failed AIResult; nothing here raises.
    """
    if agent is None:
        return AIResult.failure("AI agent not configured")

    future = _run_in_background(agent.chat_completion, system_prompt, user_prompt)
    try:
        raw = future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("AI call timed out after %.1fs", timeout)
        return AIResult.failure(f"timed out after {timeout}s")
    except Exception as e:
        logger.warning("AI call failed: %s", e)
        return AIResult.failure(f"agent error: {e}")

    if not raw or not str(raw).strip():
        return AIResult.failure("empty response")

    try:
        parsed = extract_json(str(raw), expected)
    except ValueError as e:
        logger.info("Unparseable AI response: %r", str(raw)[:200])
        return AIResult.failure(f"unparseable response: {e}")

    if not parsed:
        return AIResult.failure("empty JSON payload")
    return AIResult.success(parsed)
