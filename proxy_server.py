"""
Thin HTTP proxy in front of an Ollama server

Each route takes the target server URL in the request body and forwards
the call through OllamaClient.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from config import BENCHMARK_CONFIG, CHAT_CONFIG, PROXY_CONFIG, STRESS_TEST_CONFIG
from errors import CompletionTimeout, ConfigurationError, OllamaError, TransportError
from ollama_client import OllamaClient

logger = logging.getLogger(__name__)


class ServerRequest(BaseModel):
    serverUrl: Optional[str] = None


class ModelRequest(ServerRequest):
    model: Optional[str] = None


class CopyRequest(ServerRequest):
    source: Optional[str] = None
    destination: Optional[str] = None


class ChatRequest(ModelRequest):
    messages: Optional[List[Dict[str, str]]] = None
    temperature: float = CHAT_CONFIG["temperature"]
    max_tokens: int = CHAT_CONFIG["max_tokens"]
    systemPrompt: Optional[str] = None


class PromptRequest(ModelRequest):
    prompt: Optional[str] = None


class StressRequest(PromptRequest):
    temperature: float = STRESS_TEST_CONFIG["temperature"]
    maxTokens: int = STRESS_TEST_CONFIG["max_tokens"]
    timeout: int = STRESS_TEST_CONFIG["timeout_ms"]


def _require(**params):
    if not all(params.values()):
        missing = ", ".join(name for name, value in params.items() if not value)
        raise ConfigurationError(f"Missing required parameters: {missing}")


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def timeout_error_handler(request: Request, exc: CompletionTimeout) -> JSONResponse:
    return JSONResponse(
        status_code=408,
        content={"error": "Request timeout", "responseTime": exc.timeout_ms, "success": False},
    )


async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    logger.error("Ollama request for %s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to reach Ollama server", "details": str(exc), "success": False},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s starting up...", PROXY_CONFIG["title"])
    yield
    logger.info("%s shutting down...", PROXY_CONFIG["title"])


def create_app() -> FastAPI:
    """Create and configure the proxy application"""
    app = FastAPI(title=PROXY_CONFIG["title"], version=PROXY_CONFIG["version"], lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(CompletionTimeout, timeout_error_handler)
    app.add_exception_handler(TransportError, transport_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    @app.post("/api/ollama/test-connection")
    def test_connection(body: ServerRequest):
        _require(serverUrl=body.serverUrl)
        try:
            return OllamaClient(body.serverUrl).check_connection()
        except OllamaError as e:
            logger.error("Connection test failed: %s", e)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to connect to Ollama server", "details": str(e)},
            )

    @app.post("/api/ollama/models")
    def list_models(body: ServerRequest):
        _require(serverUrl=body.serverUrl)
        return [m.to_dict() for m in OllamaClient(body.serverUrl).list_models()]

    @app.post("/api/ollama/chat")
    def chat(body: ChatRequest):
        _require(serverUrl=body.serverUrl, model=body.model, messages=body.messages)
        content = OllamaClient(body.serverUrl).chat(
            body.model,
            body.messages,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
            system_prompt=body.systemPrompt,
        )
        return {"response": content, "model": body.model, "done": True}

    @app.post("/api/ollama/benchmark")
    def benchmark(body: PromptRequest):
        _require(serverUrl=body.serverUrl, model=body.model, prompt=body.prompt)
        completion = OllamaClient(body.serverUrl).complete_text(
            body.model,
            body.prompt,
            temperature=BENCHMARK_CONFIG["temperature"],
            max_tokens=BENCHMARK_CONFIG["max_tokens"],
            timeout_ms=BENCHMARK_CONFIG["timeout_ms"],
        )
        return {
            "response": completion.response_text or "No response generated",
            "model": completion.model_version,
            "tokenCount": completion.token_count,
            "tokensPerSecond": round(completion.tokens_per_second),
            "responseTime": round(completion.response_time_ms),
            "done": True,
        }

    @app.post("/api/ollama/stress-test")
    async def stress_test(body: StressRequest):
        _require(serverUrl=body.serverUrl, model=body.model, prompt=body.prompt)
        completion = await OllamaClient(body.serverUrl).complete_text_async(
            body.model,
            body.prompt,
            temperature=body.temperature,
            max_tokens=body.maxTokens,
            timeout_ms=body.timeout,
        )
        return {
            "response": completion.response_text,
            "model": completion.model_version,
            "tokenCount": completion.token_count,
            "tokensPerSecond": completion.tokens_per_second,
            "responseTime": round(completion.response_time_ms),
            "done": True,
            "success": True,
        }

    @app.post("/api/ollama/running")
    def running_models(body: ServerRequest):
        _require(serverUrl=body.serverUrl)
        return OllamaClient(body.serverUrl).list_running_models().to_dict()

    @app.post("/api/ollama/show")
    def show_model(body: ModelRequest):
        _require(serverUrl=body.serverUrl, model=body.model)
        return OllamaClient(body.serverUrl).show_model_info(body.model).to_dict()

    @app.post("/api/ollama/load")
    def load_model(body: ModelRequest):
        _require(serverUrl=body.serverUrl, model=body.model)
        return OllamaClient(body.serverUrl).load_model(body.model).to_dict()

    @app.post("/api/ollama/unload")
    def unload_model(body: ModelRequest):
        _require(serverUrl=body.serverUrl, model=body.model)
        return OllamaClient(body.serverUrl).unload_model(body.model).to_dict()

    @app.post("/api/ollama/copy")
    def copy_model(body: CopyRequest):
        _require(serverUrl=body.serverUrl, source=body.source, destination=body.destination)
        return OllamaClient(body.serverUrl).copy_model(body.source, body.destination).to_dict()

    @app.post("/api/ollama/delete")
    def delete_model(body: ModelRequest):
        _require(serverUrl=body.serverUrl, model=body.model)
        return OllamaClient(body.serverUrl).delete_model(body.model).to_dict()

    @app.post("/api/ollama/pull")
    def pull_model(body: ModelRequest):
        _require(serverUrl=body.serverUrl, model=body.model)
        events = OllamaClient(body.serverUrl).pull_model(body.model)

        def stream():
            try:
                for event in events:
                    line = {"status": event.status}
                    if event.total is not None:
                        line.update(completed=event.completed, total=event.total)
                    yield json.dumps(line) + "\n"
            except OllamaError as e:
                logger.error("Pull of %s failed: %s", body.model, e)
                yield json.dumps({"error": str(e)}) + "\n"

        return StreamingResponse(stream(), media_type="application/x-ndjson")

    return app


def serve(host: Optional[str] = None, port: Optional[int] = None):
    import uvicorn

    uvicorn.run(create_app(), host=host or PROXY_CONFIG["host"], port=port or PROXY_CONFIG["port"])
