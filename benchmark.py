#!/usr/bin/env python3
"""
Ollama Model Benchmark

Runs a fixed suite of prompts against one model and records response time
and throughput for each.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

import matplotlib.pyplot as plt
import pandas as pd

from config import BENCHMARK_CONFIG, OUTPUT_CONFIG
from errors import OllamaError
from ollama_client import OllamaClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkTest:
    id: str
    name: str
    description: str
    prompt: str
    category: str


BENCHMARK_TESTS = [
    BenchmarkTest("1", "Simple Q&A", "Basic question answering capability",
                  "What is the capital of France?", "Knowledge"),
    BenchmarkTest("2", "Code Generation", "Generate a simple Python function",
                  "Write a Python function to calculate the factorial of a number.", "Programming"),
    BenchmarkTest("3", "Creative Writing", "Generate creative content",
                  "Write a short story about a robot learning to paint.", "Creative"),
    BenchmarkTest("4", "Math Problem", "Solve a mathematical problem",
                  "If a train travels 120 km in 2 hours, what is its average speed? Show your work.", "Math"),
    BenchmarkTest("5", "Reasoning", "Logical reasoning test",
                  "All birds can fly. Penguins are birds. Can penguins fly? Explain your reasoning.", "Logic"),
]


@dataclass
class BenchmarkResult:
    id: str
    model_name: str
    test_name: str
    prompt: str
    response: str
    tokens_per_second: float
    response_time_ms: float
    token_count: int
    timestamp: str


class ModelBenchmark:
    def __init__(self, client: OllamaClient, model_name: str, tests: Optional[List[BenchmarkTest]] = None):
        self.client = client
        self.model_name = model_name
        self.tests = list(tests) if tests is not None else list(BENCHMARK_TESTS)
        self.results: List[BenchmarkResult] = []
        self.error: Optional[str] = None
        self._should_continue = False

    def stop(self):
        self._should_continue = False

    def run_benchmark(self, on_progress: Optional[Callable[[BenchmarkTest, float], None]] = None) -> List[BenchmarkResult]:
        """Run every test in order; the first failure ends the run"""
        self.results = []
        self.error = None
        self._should_continue = True
        total_tests = len(self.tests)

        print(f"🚀 Starting benchmark for {self.model_name}...")
        print(f"🔢 Total tests to run: {total_tests}")
        print("=" * 60)

        for index, test in enumerate(self.tests, 1):
            if not self._should_continue:
                print("🛑 Benchmark stopped")
                break

            print(f"\n🔍 Test {index}/{total_tests}: {test.name} ({test.category})")

            start_time = time.perf_counter()
            try:
                completion = self.client.complete_text(
                    self.model_name,
                    test.prompt,
                    temperature=BENCHMARK_CONFIG["temperature"],
                    max_tokens=BENCHMARK_CONFIG["max_tokens"],
                    timeout_ms=BENCHMARK_CONFIG["timeout_ms"],
                )
            except OllamaError as e:
                self.error = f"Failed to run test: {test.name} ({e})"
                logger.error(self.error)
                print(f"    ❌ {test.name} FAILED: {e}")
                break

            response_time_ms = (time.perf_counter() - start_time) * 1000
            result = BenchmarkResult(
                id=f"{int(time.time() * 1000)}{index}",
                model_name=self.model_name,
                test_name=test.name,
                prompt=test.prompt,
                response=completion.response_text or "No response generated",
                tokens_per_second=completion.tokens_per_second,
                response_time_ms=response_time_ms,
                token_count=completion.token_count,
                timestamp=datetime.now().isoformat(),
            )
            self.results.append(result)

            print(f"    ✅ {result.tokens_per_second:.1f} tokens/sec, {result.response_time_ms:.0f} ms")

            if on_progress is not None:
                on_progress(test, index / total_tests)

        self._should_continue = False
        print("\n" + "=" * 60)
        print(f"🏁 Benchmark finished! Ran {len(self.results)}/{total_tests} tests.")

        return self.results

    def summary(self) -> Dict:
        if not self.results:
            return {"total_tests": 0, "average_response_time_ms": 0.0, "average_tokens_per_second": 0.0}

        return {
            "total_tests": len(self.results),
            "average_response_time_ms": sum(r.response_time_ms for r in self.results) / len(self.results),
            "average_tokens_per_second": sum(r.tokens_per_second for r in self.results) / len(self.results),
        }

    def save_results(self, filename: str = None) -> str:
        """Save results to JSON and CSV files"""
        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"benchmark_{timestamp}"

        data = {
            "model": self.model_name,
            "results": [asdict(r) for r in self.results],
            "summary": self.summary(),
            "exported_at": datetime.now().isoformat(),
        }

        if OUTPUT_CONFIG["save_json"]:
            with open(f"{filename}.json", "w") as f:
                json.dump(data, f, indent=2)

        if OUTPUT_CONFIG["save_csv"] and self.results:
            df = pd.DataFrame([asdict(r) for r in self.results])
            df.to_csv(f"{filename}.csv", index=False)

        print(f"Results saved to {filename}.json and {filename}.csv")
        return filename

    def plot_results(self, filename: str = None) -> Optional[str]:
        """Create visualization of benchmark results"""
        if not self.results:
            return None

        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(15, 6))

        names = [r.test_name for r in self.results]
        tps = [r.tokens_per_second for r in self.results]
        response_times = [r.response_time_ms for r in self.results]

        ax1.bar(names, tps, color="tab:blue")
        ax1.set_ylabel("Tokens/Second")
        ax1.set_title(f"Throughput per Test ({self.model_name})")
        ax1.grid(True, axis="y", alpha=0.3)

        ax2.bar(names, response_times, color="tab:red")
        ax2.set_ylabel("Response Time (ms)")
        ax2.set_title("Response Time per Test")
        ax2.grid(True, axis="y", alpha=0.3)

        for ax in (ax1, ax2):
            ax.tick_params(axis="x", rotation=30)

        plt.tight_layout()

        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"benchmark_plot_{timestamp}.{OUTPUT_CONFIG['plot_format']}"
        else:
            filename = f"{filename}_plot.{OUTPUT_CONFIG['plot_format']}"

        plt.savefig(filename, dpi=OUTPUT_CONFIG["plot_dpi"], bbox_inches="tight")
        plt.close(fig)
        print(f"Plot saved to {filename}")
        return filename
