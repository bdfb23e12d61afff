"""
Schema-constrained chat completions against an Ollama server.

The client sends the conversation plus a JSON Schema `format` constraint and
returns the assistant message content (a JSON document when the model honors
the schema). Failures are retried with linear back-off, like the run scripts'
ollama_chat helper, and surface as ChatClientError.

Set `debug_dir` to keep the raw request/response of the last round trip as
request.json / response.json.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import ollama

logger = logging.getLogger(__name__)

USER_ROLE = "user"
SYSTEM_ROLE = "system"

DEFAULT_MODEL = os.environ.get("OLLAMA_MODEL", "llama3.1:8b")
DEFAULT_RETRIES = int(os.environ.get("CLD_RETRIES", "2"))


class ChatClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class ResponseFormat:
    name: str
    schema: Dict[str, Any]
    strict: bool = True


class OllamaChatClient:
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        host: Optional[str] = None,
        *,
        retries: int = DEFAULT_RETRIES,
        retry_delay_s: float = 1.0,
        debug_dir: Optional[str | Path] = None,
        client: Any = None,
    ):
        self.model = model
        self.retries = max(0, retries)
        self.retry_delay_s = retry_delay_s
        self.debug_dir = Path(debug_dir) if debug_dir else None
        self._client = client if client is not None else ollama.Client(host=host)

    def _build_request(
        self,
        messages: Sequence[Message],
        *,
        system_prompt: Optional[str],
        response_format: Optional[ResponseFormat],
        temperature: Optional[float],
        max_tokens: Optional[int],
        seed: Optional[int],
    ) -> Dict[str, Any]:
        # the system prompt travels as the first message
        all_msgs: List[Message] = []
        if system_prompt:
            all_msgs.append(Message(SYSTEM_ROLE, system_prompt))
        all_msgs.extend(messages)

        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens:
            options["num_predict"] = max_tokens
        if seed is not None:
            options["seed"] = seed

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [asdict(m) for m in all_msgs],
        }
        if response_format is not None:
            request["format"] = response_format.schema
        if options:
            request["options"] = options
        return request

    def _dump(self, name: str, payload: Any) -> None:
        if self.debug_dir is None:
            return
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        path = self.debug_dir / name
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")

    def chat_completion(
        self,
        messages: Sequence[Message],
        *,
        system_prompt: Optional[str] = None,
        response_format: Optional[ResponseFormat] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> str:
        request = self._build_request(
            messages,
            system_prompt=system_prompt,
            response_format=response_format,
            temperature=temperature,
            max_tokens=max_tokens,
            seed=seed,
        )
        debug_request = dict(request)
        if response_format is not None:
            # ollama only takes the schema; keep the name and strictness for the record
            debug_request["response_format"] = {"name": response_format.name, "strict": response_format.strict}
        self._dump("request.json", debug_request)

        last_err: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                logger.debug("chat attempt %d/%d model=%s", attempt + 1, self.retries + 1, self.model)
                resp = self._client.chat(**request)
                break
            except Exception as e:
                last_err = e
                logger.warning("chat attempt %d failed: %s", attempt + 1, e)
                if attempt < self.retries:
                    time.sleep(self.retry_delay_s * (attempt + 1))
        else:
            raise ChatClientError(
                f"Ollama call failed after {self.retries + 1} attempts: {last_err}"
            ) from last_err

        self._dump("response.json", resp.model_dump() if hasattr(resp, "model_dump") else resp)

        content = (resp.get("message") or {}).get("content")
        if not content:
            raise ChatClientError(f"empty response from {self.model}")
        if not isinstance(content, str):
            content = str(content)
        return content


def preflight(client: OllamaChatClient) -> None:
    try:
        client._client.list()
    except Exception as e:
        raise ChatClientError(
            "Ollama is not reachable. Start Ollama (`ollama serve`) and pull the model "
            f"(e.g. `ollama pull {client.model}`). For a remote server set OLLAMA_HOST."
        ) from e
