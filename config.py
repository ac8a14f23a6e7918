"""
Configuration file for the Ollama dashboard settings
"""

import os

# Server configuration
SERVER_CONFIG = {
    "url": os.environ.get("OLLAMA_HOST", "http://localhost:11434"),
    "connect_timeout": 10,  # seconds, version probe
    "tags_timeout": 5,  # seconds, model count probe
    "request_timeout": 300,  # seconds per generate/chat call
    "presets": {
        "Local Default": "http://localhost:11434",
        "Local Alt Port": "http://localhost:11435",
        "Docker Default": "http://127.0.0.1:11434",
    },
}

# VRAM calculator configuration
VRAM_CONFIG = {
    "context_length": 4096,
    "precision": "fp16",
    "batch_size": 1,
    "framework_overhead_mb": 1024,
    "min_context": 1024,
    "max_context": 131072,
    "context_step": 1024,
    "min_batch": 1,
    "max_batch": 32,
    "min_overhead_mb": 0,
    "max_overhead_mb": 4096,
}

# Stress test configuration
STRESS_TEST_CONFIG = {
    "iterations": 5,
    "concurrent_requests": 2,
    "temperature": 0.7,
    "max_tokens": 512,
    "timeout_ms": 30000,
    "max_iterations": 20,
    "max_concurrent_requests": 5,
    "min_timeout_ms": 5000,
    "max_timeout_ms": 120000,
    "max_models": 4,
    "sample_host_metrics": False,
    "prompts": [
        "Write a detailed explanation of quantum computing in simple terms.",
        "Create a comprehensive business plan for a sustainable energy startup.",
        "Explain the process of photosynthesis and its importance to life on Earth.",
        "Write a short story about time travel with a surprising twist ending.",
        "Describe the key differences between machine learning and artificial intelligence.",
    ],
}

# Benchmark configuration
BENCHMARK_CONFIG = {
    "temperature": 0.7,
    "max_tokens": 512,
    "timeout_ms": 300000,
}

# Chat configuration
CHAT_CONFIG = {
    "temperature": 0.7,
    "max_tokens": 2048,
}

# Output configuration
OUTPUT_CONFIG = {
    "save_json": True,
    "save_csv": True,
    "save_plots": True,
    "plot_format": "png",
    "plot_dpi": 300
}

# Prompt template storage
PROMPT_STORE_CONFIG = {
    "path": os.path.join(os.path.expanduser("~"), ".ollama_dashboard", "prompts.json"),
    "storage_key": "systemPrompts",
}

# HTTP proxy configuration
PROXY_CONFIG = {
    "host": "127.0.0.1",
    "port": 3000,
    "title": "Ollama Dashboard Proxy",
    "version": "0.1.0",
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
}
