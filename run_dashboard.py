#!/usr/bin/env python3
"""
Command line dashboard for an Ollama server
"""

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

import pandas as pd

from benchmark import ModelBenchmark
from config import CHAT_CONFIG, LOGGING_CONFIG, OUTPUT_CONFIG, PROXY_CONFIG, SERVER_CONFIG, STRESS_TEST_CONFIG, VRAM_CONFIG
from errors import ConfigurationError, OllamaError
from ollama_client import OllamaClient
from prompt_store import PromptStore
from stress_test import (
    COMPLETED,
    StressTestConfig,
    StressTestOrchestrator,
    export_results,
    ollama_completion,
    plot_summary,
    summary_frame,
    validate_config,
)
from utils import format_bytes, output_prefix, print_system_info
from vram_calculator import (
    PRECISIONS,
    clamp_input,
    estimate,
    estimate_all_precisions,
    format_breakdown,
    gpu_recommendations,
    result_to_dict,
)


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Dashboard for managing, benchmarking and stress testing Ollama models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_dashboard.py connect                          # Test the server connection
  python run_dashboard.py models                           # List installed models
  python run_dashboard.py vram llama3:8b --precision int4  # Estimate VRAM
  python run_dashboard.py benchmark llama3:8b              # Run the fixed benchmark suite
  python run_dashboard.py stress llama3:8b mistral:7b --iterations 10 --concurrent 3
  python run_dashboard.py serve --port 3000                # Start the HTTP proxy
        """
    )

    parser.add_argument(
        "--server",
        type=str,
        default=SERVER_CONFIG["url"],
        help=f"Ollama server URL or preset name ({', '.join(SERVER_CONFIG['presets'])}); default: {SERVER_CONFIG['url']}"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("info", help="Show system information and exit")
    connect_parser = subparsers.add_parser("connect", help="Test the connection to the server")
    connect_parser.add_argument("--wait", type=int, metavar="SECONDS", help="Wait for the server to come up first")
    subparsers.add_parser("models", help="List installed models")
    subparsers.add_parser("running", help="List models loaded in memory")

    for name, help_text in [
        ("show", "Show model details"),
        ("pull", "Download a model"),
        ("load", "Load a model into memory"),
        ("unload", "Unload a model from memory"),
        ("delete", "Delete a model"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("model", type=str)

    copy_parser = subparsers.add_parser("copy", help="Copy a model under a new name")
    copy_parser.add_argument("source", type=str)
    copy_parser.add_argument("destination", type=str)

    chat_parser = subparsers.add_parser("chat", help="Interactive chat session")
    chat_parser.add_argument("model", type=str)
    chat_parser.add_argument("--system-prompt", type=str, help="Id of a stored system prompt")
    chat_parser.add_argument("--temperature", type=float, default=CHAT_CONFIG["temperature"])
    chat_parser.add_argument("--max-tokens", type=int, default=CHAT_CONFIG["max_tokens"])

    benchmark_parser = subparsers.add_parser("benchmark", help="Run the fixed benchmark prompts")
    benchmark_parser.add_argument("model", type=str)
    benchmark_parser.add_argument("--output", type=str, help="Output filename prefix")
    benchmark_parser.add_argument("--no-plots", action="store_true", help="Skip generating plots")

    stress_parser = subparsers.add_parser("stress", help="Concurrent multi-model stress test")
    stress_parser.add_argument("models", nargs="+", type=str)
    stress_parser.add_argument("--prompt", type=str, default=STRESS_TEST_CONFIG["prompts"][0])
    stress_parser.add_argument(
        "--preset", type=int, choices=range(len(STRESS_TEST_CONFIG["prompts"])),
        help="Use one of the preset prompts by index"
    )
    stress_parser.add_argument(
        "--iterations", type=int, default=STRESS_TEST_CONFIG["iterations"],
        help=f"Number of iterations (default: {STRESS_TEST_CONFIG['iterations']})"
    )
    stress_parser.add_argument(
        "--concurrent", type=int, default=STRESS_TEST_CONFIG["concurrent_requests"],
        help=f"Concurrent requests per model per iteration (default: {STRESS_TEST_CONFIG['concurrent_requests']})"
    )
    stress_parser.add_argument("--temperature", type=float, default=STRESS_TEST_CONFIG["temperature"])
    stress_parser.add_argument("--max-tokens", type=int, default=STRESS_TEST_CONFIG["max_tokens"])
    stress_parser.add_argument("--timeout", type=int, default=STRESS_TEST_CONFIG["timeout_ms"], help="Timeout in ms")
    stress_parser.add_argument("--host-metrics", action="store_true", help="Record host memory/CPU per request")
    stress_parser.add_argument("--output", type=str, help="Output filename prefix")
    stress_parser.add_argument("--no-plots", action="store_true", help="Skip generating plots")

    vram_parser = subparsers.add_parser("vram", help="Estimate VRAM requirements")
    vram_parser.add_argument("model", type=str)
    vram_parser.add_argument("--context", type=int, default=VRAM_CONFIG["context_length"])
    vram_parser.add_argument("--precision", choices=PRECISIONS, default=VRAM_CONFIG["precision"])
    vram_parser.add_argument("--batch", type=int, default=VRAM_CONFIG["batch_size"])
    vram_parser.add_argument("--overhead", type=float, default=VRAM_CONFIG["framework_overhead_mb"], help="MB")
    vram_parser.add_argument("--compare", action="store_true", help="Compare every precision")
    vram_parser.add_argument("--json", action="store_true", help="Print the estimate as JSON")

    prompts_parser = subparsers.add_parser("prompts", help="Manage stored system prompts")
    prompts_parser.add_argument("action", choices=["list", "show", "add", "delete", "favorite", "export", "import"])
    prompts_parser.add_argument("target", nargs="?", help="Prompt id or file path")
    prompts_parser.add_argument("--name", type=str, default="New Prompt")
    prompts_parser.add_argument("--content", type=str, default="")
    prompts_parser.add_argument("--description", type=str, default="Description for new prompt")
    prompts_parser.add_argument("--category", type=str, default="General")
    prompts_parser.add_argument("--search", type=str, default="")
    prompts_parser.add_argument("--filter-category", type=str, default="All")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP proxy")
    serve_parser.add_argument("--host", type=str, default=PROXY_CONFIG["host"])
    serve_parser.add_argument("--port", type=int, default=PROXY_CONFIG["port"])

    return parser.parse_args(argv)


def print_operation(result):
    print(f"{'✅' if result.success else '❌'} {result.message}")
    if result.data is not None:
        print(json.dumps(result.data, indent=2, default=str))
    return 0 if result.success else 1


def cmd_connect(client, args):
    if args.wait and not client.wait_for_service(args.wait):
        print(f"❌ Ollama server at {client.server_url} did not respond within {args.wait}s")
        return 1

    info = client.check_connection()
    print(f"✅ Connected to {info['server_url']}")
    print(f"📦 Ollama version: {info['version']}")
    print(f"🧠 Models available: {info['models_count']}")
    return 0


def cmd_models(client, args):
    models = client.list_models()
    if not models:
        print("No models installed")
        return 0

    df = pd.DataFrame([{
        "name": m.name,
        "size": format_bytes(m.size_bytes),
        "family": m.family or "",
        "parameters": m.parameter_size or "",
        "quantization": m.quantization_level or "",
        "modified": m.modified_at,
    } for m in models])
    print(df.to_string(index=False))
    return 0


def cmd_pull(client, args):
    print(f"📥 Pulling {args.model}...")
    last_status = ""
    for event in client.pull_model(args.model):
        percent = event.percent
        if percent is not None:
            progress_bar = "█" * int(percent // 2) + "░" * (50 - int(percent // 2))
            print(f"\r[{progress_bar}] {percent:.1f}% ({event.completed / (1024 * 1024):.1f}/"
                  f"{event.total / (1024 * 1024):.1f} MB)", end="", flush=True)
        elif event.status != last_status:
            if last_status:
                print()
            print(f"📋 {event.status}")
            last_status = event.status

        if event.status == "success":
            print("\n✅ Model pulled successfully!")
            return 0

    print("\n❌ Pull finished but no success status received")
    return 1


def cmd_chat(client, args):
    system_prompt = None
    if args.system_prompt:
        stored = PromptStore().get(args.system_prompt)
        if stored is None:
            raise ConfigurationError(f"No stored prompt with id {args.system_prompt}")
        system_prompt = stored.content
        print(f"📝 Using system prompt: {stored.name}")

    print(f"💬 Chatting with {args.model}. Type 'exit' or press Ctrl+D to quit.")
    messages = []
    while True:
        try:
            user_input = input("\n> ").strip()
        except EOFError:
            print()
            break
        if user_input.lower() in ("exit", "quit"):
            break
        if not user_input:
            continue

        messages.append({"role": "user", "content": user_input})
        try:
            reply = client.chat(
                args.model, messages,
                temperature=args.temperature, max_tokens=args.max_tokens, system_prompt=system_prompt,
            )
        except OllamaError as e:
            messages.pop()
            print(f"❌ Failed to send chat message: {e}")
            continue

        messages.append({"role": "assistant", "content": reply})
        print(f"\n{reply}")
    return 0


def cmd_benchmark(client, args):
    benchmark = ModelBenchmark(client, args.model)
    prefix = args.output or output_prefix("benchmark", args.model)

    try:
        results = benchmark.run_benchmark()
    except KeyboardInterrupt:
        print("\n\n⚠️  Benchmark interrupted by user")
        results = benchmark.results

    if not results:
        print(f"❌ No results obtained{': ' + benchmark.error if benchmark.error else ''}")
        return 1

    summary = benchmark.summary()
    print(f"📊 Average: {summary['average_tokens_per_second']:.1f} tokens/sec, "
          f"{summary['average_response_time_ms']:.0f} ms")

    benchmark.save_results(prefix)
    if not args.no_plots and OUTPUT_CONFIG["save_plots"]:
        benchmark.plot_results(prefix)
    return 0 if benchmark.error is None else 1


def print_stress_event(event):
    if event.kind == "request_finished":
        result = event.result
        if result.status == COMPLETED:
            print(f"    ✅ {result.model_name}: {result.tokens_per_second:.1f} tokens/sec, "
                  f"{result.response_time_ms:.0f} ms")
        else:
            print(f"    ❌ {result.model_name}: {result.error} ({result.response_time_ms:.0f} ms)")
    elif event.kind == "iteration_completed":
        bar_length = 30
        filled_length = int(bar_length * event.progress)
        bar = "█" * filled_length + "░" * (bar_length - filled_length)
        print(f"📈 Progress: [{bar}] {event.progress * 100:.1f}% (iteration {event.iteration})")
    elif event.kind == "stopped":
        print("🛑 Stress test stopped")


async def _run_stress(orchestrator, models, config):
    loop = asyncio.get_running_loop()
    # Ctrl+C stops scheduling new iterations; in-flight requests still finish
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
    try:
        return await orchestrator.run(models, config)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def cmd_stress(client, args):
    prompt = STRESS_TEST_CONFIG["prompts"][args.preset] if args.preset is not None else args.prompt
    config = StressTestConfig.clamped(
        prompt=prompt,
        iterations=args.iterations,
        concurrent_requests=args.concurrent,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        timeout_ms=args.timeout,
    )
    models = list(dict.fromkeys(args.models))
    validate_config(models, config, max_models=STRESS_TEST_CONFIG["max_models"])

    print("\nStress Test Configuration:")
    print("-" * 40)
    print(f"Models: {', '.join(models)}")
    print(f"Iterations: {config.iterations}")
    print(f"Concurrent requests: {config.concurrent_requests}")
    print(f"Timeout: {config.timeout_ms} ms")
    print("Press Ctrl+C to stop after the current iteration")
    print()

    orchestrator = StressTestOrchestrator(ollama_completion(client), sample_host_metrics=args.host_metrics)
    orchestrator.subscribe(print_stress_event)
    results = asyncio.run(_run_stress(orchestrator, models, config))

    summary = orchestrator.summary()
    print("\n" + "=" * 60)
    print("📊 STRESS TEST SUMMARY")
    print("=" * 60)
    print(summary_frame(summary).to_string())

    prefix = args.output or output_prefix("stress_test")
    export_results(prefix, orchestrator.models, config, results)
    print(f"\n💾 Results saved with prefix: {prefix}")
    if not args.no_plots and OUTPUT_CONFIG["save_plots"]:
        plot_path = plot_summary(summary, prefix)
        if plot_path:
            print(f"Plot saved to {plot_path}")
    return 0


def cmd_vram(client, args):
    model = client.find_model(args.model)
    if model is None:
        raise ConfigurationError(f"Model {args.model} not found on {client.server_url}")

    if args.compare:
        results = estimate_all_precisions(model, args.context, args.batch, args.overhead)
        if args.json:
            print(json.dumps([result_to_dict(r) for r in results], indent=2))
            return 0
        df = pd.DataFrame([{
            "precision": r.precision,
            "base_model_mb": round(r.base_model_vram_mb, 1),
            "context_buffer_mb": round(r.context_buffer_mb, 2),
            "overhead_mb": r.framework_overhead_mb,
            "total_gb": round(r.total_vram_gb, 2),
        } for r in results])
        print(df.to_string(index=False))
        return 0

    result = estimate(clamp_input(model, args.context, args.precision, args.batch, args.overhead))
    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
        return 0
    print(format_breakdown(model.name, result))
    print(f"Recommended GPUs: {', '.join(gpu_recommendations(result.total_vram_gb))}")
    return 0


def cmd_prompts(args):
    store = PromptStore()

    if args.action == "list":
        for prompt in store.search(args.search, args.filter_category):
            star = "⭐" if prompt.is_favorite else "  "
            print(f"{star} [{prompt.id}] {prompt.name} ({prompt.category}) - {prompt.description}")
        return 0

    if args.action == "add":
        prompt = store.create(args.name, args.content, args.description, args.category)
        print(f"✅ Created prompt {prompt.id}")
        return 0

    if not args.target:
        raise ConfigurationError(f"prompts {args.action} requires a target")

    if args.action == "show":
        prompt = store.get(args.target)
        if prompt is None:
            raise ConfigurationError(f"No stored prompt with id {args.target}")
        print(prompt.content)
    elif args.action == "delete":
        store.delete(args.target)
        print(f"🗑️  Deleted prompt {args.target}")
    elif args.action == "favorite":
        prompt = store.toggle_favorite(args.target)
        print(f"{'⭐' if prompt.is_favorite else '☆'} {prompt.name}")
    elif args.action == "export":
        store.export_to_file(args.target)
        print(f"💾 Exported prompts to {args.target}")
    elif args.action == "import":
        imported = store.import_from_file(args.target)
        print(f"✅ Imported {len(imported)} prompts")
    return 0


def main(argv=None):
    """Main function"""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else LOGGING_CONFIG["level"],
        format=LOGGING_CONFIG["format"],
    )

    server_url = SERVER_CONFIG["presets"].get(args.server, args.server)
    client = OllamaClient(server_url)

    commands = {
        "connect": cmd_connect,
        "models": cmd_models,
        "running": lambda c, a: print_operation(c.list_running_models()),
        "show": lambda c, a: print_operation(c.show_model_info(a.model)),
        "load": lambda c, a: print_operation(c.load_model(a.model)),
        "unload": lambda c, a: print_operation(c.unload_model(a.model)),
        "delete": lambda c, a: print_operation(c.delete_model(a.model)),
        "copy": lambda c, a: print_operation(c.copy_model(a.source, a.destination)),
        "pull": cmd_pull,
        "chat": cmd_chat,
        "benchmark": cmd_benchmark,
        "stress": cmd_stress,
        "vram": cmd_vram,
    }

    try:
        if args.command == "info":
            print_system_info(server_url)
            return 0
        if args.command == "prompts":
            return cmd_prompts(args)
        if args.command == "serve":
            from proxy_server import serve

            serve(args.host, args.port)
            return 0
        return commands[args.command](client, args)

    except ConfigurationError as e:
        print(f"❌ {e}")
        return 2
    except OllamaError as e:
        print(f"\n❌ Error talking to Ollama server: {e}")
        return 1
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
