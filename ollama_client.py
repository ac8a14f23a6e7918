"""
Ollama server client

Wraps the REST endpoints the dashboard needs. Raw endpoints (tags, version,
ps, show, pull) go through requests; generation, chat and model management
go through the ollama package, with ollama.AsyncClient for the stress test.
"""

import asyncio
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import httpx
import ollama
import requests

from config import SERVER_CONFIG
from errors import CompletionTimeout, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """A model as reported by /api/tags"""

    name: str
    size_bytes: int
    modified_at: str = ""
    digest: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelDescriptor":
        return cls(
            name=data.get("name", ""),
            size_bytes=int(data.get("size", 0) or 0),
            modified_at=data.get("modified_at", ""),
            digest=data.get("digest", ""),
            details=dict(data.get("details") or {}),
        )

    @property
    def family(self) -> Optional[str]:
        return self.details.get("family")

    @property
    def parameter_size(self) -> Optional[str]:
        return self.details.get("parameter_size")

    @property
    def quantization_level(self) -> Optional[str]:
        return self.details.get("quantization_level")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size_bytes,
            "modified_at": self.modified_at,
            "digest": self.digest,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class CompletionResult:
    response_text: str
    token_count: int
    tokens_per_second: float
    model_version: str
    response_time_ms: float


@dataclass(frozen=True)
class PullProgress:
    """One progress event from a streaming pull"""

    status: str
    completed: Optional[int] = None
    total: Optional[int] = None

    @property
    def percent(self) -> Optional[float]:
        if self.completed is None or not self.total:
            return None
        return self.completed / self.total * 100


@dataclass
class OperationResult:
    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_completion(response_text: str, model_version: str, elapsed_seconds: float) -> CompletionResult:
    """Derive token count and throughput from a finished generation"""
    # Approximate tokens by whitespace-separated words
    token_count = len(response_text.split())
    tokens_per_second = token_count / elapsed_seconds if token_count > 0 and elapsed_seconds > 0 else 0.0
    return CompletionResult(
        response_text=response_text,
        token_count=token_count,
        tokens_per_second=round(tokens_per_second, 2),
        model_version=model_version,
        response_time_ms=elapsed_seconds * 1000,
    )


@contextmanager
def _translate_errors(timeout_ms: Optional[int] = None):
    """Map requests/httpx/ollama exceptions onto the dashboard error types"""
    try:
        yield
    except (asyncio.TimeoutError, httpx.TimeoutException, requests.Timeout) as e:
        raise CompletionTimeout(timeout_ms or 0) from e
    except ollama.ResponseError as e:
        raise TransportError(f"HTTP error! status: {e.status_code} ({e.error})", e.status_code) from e
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise TransportError(f"HTTP error! status: {status}", status) from e
    except (requests.RequestException, httpx.HTTPError, ConnectionError) as e:
        raise TransportError(str(e)) from e


class OllamaClient:
    def __init__(self, server_url: Optional[str] = None):
        self.server_url = (server_url or SERVER_CONFIG["url"]).rstrip("/")

    def _get(self, path: str, timeout: float) -> Dict[str, Any]:
        with _translate_errors(int(timeout * 1000)):
            response = requests.get(f"{self.server_url}{path}", timeout=timeout)
            response.raise_for_status()
            return response.json()

    def _post(self, path: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        with _translate_errors(int(timeout * 1000)):
            response = requests.post(f"{self.server_url}{path}", json=payload, timeout=timeout)
            response.raise_for_status()
            return response.json()

    def _client(self, timeout_ms: Optional[int] = None) -> ollama.Client:
        timeout = timeout_ms / 1000 if timeout_ms else SERVER_CONFIG["request_timeout"]
        return ollama.Client(host=self.server_url, timeout=timeout)

    def check_connection(self) -> Dict[str, Any]:
        """Probe /api/version and count models; raises TransportError when unreachable"""
        data = self._get("/api/version", SERVER_CONFIG["connect_timeout"])

        try:
            models_count = len(self._get("/api/tags", SERVER_CONFIG["tags_timeout"]).get("models") or [])
        except (TransportError, CompletionTimeout) as e:
            logger.debug("Model count unavailable: %s", e)
            models_count = 0

        return {
            "success": True,
            "version": data.get("version") or "unknown",
            "models_count": models_count,
            "server_url": self.server_url,
            "timestamp": datetime.now().isoformat(),
        }

    def is_available(self) -> bool:
        try:
            self._get("/api/tags", SERVER_CONFIG["tags_timeout"])
            return True
        except (TransportError, CompletionTimeout):
            return False

    def wait_for_service(self, timeout: int = 30) -> bool:
        """Wait for the Ollama service to become available"""
        start_time = time.time()

        while time.time() - start_time < timeout:
            if self.is_available():
                return True
            time.sleep(1)

        return False

    def list_models(self) -> List[ModelDescriptor]:
        data = self._get("/api/tags", SERVER_CONFIG["request_timeout"])
        return [ModelDescriptor.from_dict(m) for m in data.get("models") or []]

    def find_model(self, name: str) -> Optional[ModelDescriptor]:
        for model in self.list_models():
            if model.name == name:
                return model
        return None

    def list_running_models(self) -> OperationResult:
        try:
            data = self._get("/api/ps", SERVER_CONFIG["request_timeout"])
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to get running models: {e}")
        return OperationResult(True, "Running models retrieved successfully", data.get("models") or [])

    def show_model_info(self, name: str) -> OperationResult:
        try:
            data = self._post("/api/show", {"model": name, "verbose": True}, SERVER_CONFIG["request_timeout"])
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to get model info: {e}")
        return OperationResult(True, "Model information retrieved successfully", data)

    def load_model(self, name: str) -> OperationResult:
        """An empty prompt makes the server load the model into memory"""
        try:
            with _translate_errors(), self._client() as client:
                client.generate(model=name, prompt="")
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to load model: {e}")
        return OperationResult(True, f"Model {name} loaded successfully")

    def unload_model(self, name: str) -> OperationResult:
        try:
            with _translate_errors(), self._client() as client:
                client.generate(model=name, prompt="", keep_alive=0)
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to unload model: {e}")
        return OperationResult(True, f"Model {name} unloaded successfully")

    def copy_model(self, source: str, destination: str) -> OperationResult:
        try:
            with _translate_errors(), self._client() as client:
                client.copy(source, destination)
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to copy model: {e}")
        return OperationResult(True, f"Model {source} copied to {destination} successfully")

    def delete_model(self, name: str) -> OperationResult:
        try:
            with _translate_errors(), self._client() as client:
                client.delete(name)
        except (TransportError, CompletionTimeout) as e:
            return OperationResult(False, f"Failed to delete model: {e}")
        return OperationResult(True, f"Model {name} deleted successfully")

    def pull_model(self, name: str) -> Iterator[PullProgress]:
        """Stream pull progress events until the transfer finishes.

        The generator is lazy and single-use: nothing is requested until the
        first event is consumed. Lines that are not valid JSON are skipped.
        """
        with _translate_errors():
            response = requests.post(
                f"{self.server_url}/api/pull", json={"name": name, "stream": True}, stream=True
            )
            response.raise_for_status()

            try:
                for line in response.iter_lines():
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    if "error" in data:
                        raise TransportError(f"Pull failed: {data['error']}")
                    if "status" in data:
                        yield PullProgress(
                            status=data["status"],
                            completed=data.get("completed"),
                            total=data.get("total"),
                        )
            finally:
                response.close()

    def complete_text(
        self,
        model: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 512,
        timeout_ms: Optional[int] = None,
    ) -> CompletionResult:
        """Single non-streaming generation, timed from dispatch"""
        start = time.perf_counter()
        with _translate_errors(timeout_ms), self._client(timeout_ms) as client:
            response = client.generate(
                model=model,
                prompt=prompt,
                stream=False,
                options={"temperature": temperature, "num_predict": max_tokens},
            )
        elapsed = time.perf_counter() - start
        return build_completion(response.get("response") or "", response.get("model") or model, elapsed)

    async def complete_text_async(
        self,
        model: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 512,
        timeout_ms: int = 30000,
    ) -> CompletionResult:
        """Asyncio variant of complete_text; the deadline covers the whole request"""
        start = time.perf_counter()
        with _translate_errors(timeout_ms):
            async with ollama.AsyncClient(host=self.server_url) as client:
                response = await asyncio.wait_for(
                    client.generate(
                        model=model,
                        prompt=prompt,
                        stream=False,
                        options={"temperature": temperature, "num_predict": max_tokens},
                    ),
                    timeout=timeout_ms / 1000,
                )
        elapsed = time.perf_counter() - start
        return build_completion(response.get("response") or "", response.get("model") or model, elapsed)

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 2048,
        system_prompt: Optional[str] = None,
    ) -> str:
        if system_prompt:
            messages = [{"role": "system", "content": system_prompt}] + list(messages)

        with _translate_errors(), self._client() as client:
            response = client.chat(
                model=model,
                messages=messages,
                stream=False,
                options={"temperature": temperature, "num_predict": max_tokens},
            )
        message = response.get("message")
        content = message.get("content") if message else None
        return content or "No response generated"
