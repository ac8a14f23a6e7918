"""
Tests for the stress test orchestrator and its summaries
"""

import asyncio
import json

import pytest

from errors import CompletionTimeout, ConfigurationError, TransportError
from ollama_client import CompletionResult
from stress_test import (
    COMPLETED,
    FAILED,
    RUNNING,
    STOPPED,
    StressRequestResult,
    StressTestConfig,
    StressTestOrchestrator,
    export_results,
    generate_summary,
    summarize_model,
    summary_frame,
    validate_config,
)


def completion(text="one two three", tps=12.5):
    return CompletionResult(
        response_text=text,
        token_count=len(text.split()),
        tokens_per_second=tps,
        model_version="test",
        response_time_ms=1.0,
    )


def make_result(request_id, status, response_time_ms=0.0, token_count=0, tokens_per_second=0.0):
    return StressRequestResult(
        request_id=request_id,
        model_name="m",
        iteration=1,
        status=status,
        start_time=0.0,
        response_time_ms=response_time_ms,
        token_count=token_count,
        tokens_per_second=tokens_per_second,
    )


class FakeCompletion:
    """Records concurrency and fails for the listed models"""

    def __init__(self, failing=(), delay=0.01):
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, model, config):
        self.calls.append(model)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if model in self.failing:
                raise TransportError("HTTP error! status: 500", 500)
            return completion()
        finally:
            self.in_flight -= 1


CONFIG = StressTestConfig(prompt="hello", iterations=3, concurrent_requests=2, timeout_ms=1000)


def run(orchestrator, models, config=CONFIG):
    return asyncio.run(orchestrator.run(models, config))


def test_run_records_n_times_c_results_per_model():
    fake = FakeCompletion()
    orchestrator = StressTestOrchestrator(fake)

    results = run(orchestrator, ["a", "b"])

    assert set(results) == {"a", "b"}
    for entries in results.values():
        assert len(entries) == CONFIG.iterations * CONFIG.concurrent_requests
        assert all(r.status == COMPLETED for r in entries)
        assert sorted({r.iteration for r in entries}) == [1, 2, 3]
    assert orchestrator.state == COMPLETED
    assert orchestrator.progress == 1.0
    assert len(fake.calls) == 12


def test_requests_within_iteration_run_concurrently():
    fake = FakeCompletion(delay=0.05)
    orchestrator = StressTestOrchestrator(fake)

    run(orchestrator, ["a", "b"])

    # Two models times two slots in flight together, never more
    assert fake.max_in_flight == 4


def test_iteration_waits_for_slowest_request():
    order = []

    async def complete(model, config):
        order.append(("start", model))
        await asyncio.sleep(0.05 if model == "slow" else 0.0)
        order.append(("end", model))
        return completion()

    orchestrator = StressTestOrchestrator(complete)
    run(orchestrator, ["slow", "fast"], StressTestConfig(prompt="p", iterations=2, concurrent_requests=1))

    # Second iteration starts only after the slow request of the first ends
    first_slow_end = order.index(("end", "slow"))
    second_start = [i for i, event in enumerate(order) if event[0] == "start"][2]
    assert second_start > first_slow_end


def test_failures_become_failed_entries_with_elapsed_time():
    fake = FakeCompletion(failing={"bad"})
    orchestrator = StressTestOrchestrator(fake)

    results = run(orchestrator, ["good", "bad"])

    assert all(r.status == COMPLETED for r in results["good"])
    assert all(r.status == FAILED for r in results["bad"])
    for entry in results["bad"]:
        assert "500" in entry.error
        assert entry.response_time_ms > 0
        assert entry.end_time is not None
    assert orchestrator.state == COMPLETED


def test_timeout_is_reported_as_failed():
    async def complete(model, config):
        raise CompletionTimeout(config.timeout_ms)

    orchestrator = StressTestOrchestrator(complete)
    results = run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=2))

    assert [r.status for r in results["m"]] == [FAILED, FAILED]
    assert all("timeout" in r.error.lower() for r in results["m"])


def test_running_entries_visible_before_resolution():
    seen = []
    orchestrator = StressTestOrchestrator(FakeCompletion())

    def on_event(event):
        if event.kind == "request_started":
            seen.append([r.status for r in orchestrator.results[event.result.model_name]])

    orchestrator.subscribe(on_event)
    run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=3))

    assert seen[-1] == [RUNNING, RUNNING, RUNNING]


def test_stop_finishes_current_iteration_then_halts():
    fake = FakeCompletion(delay=0.02)
    orchestrator = StressTestOrchestrator(fake)
    kinds = []

    def on_event(event):
        kinds.append(event.kind)
        if event.kind == "request_started" and event.iteration == 2:
            orchestrator.stop()

    orchestrator.subscribe(on_event)
    results = run(orchestrator, ["a", "b"], StressTestConfig(prompt="p", iterations=5, concurrent_requests=2))

    assert orchestrator.state == STOPPED
    assert orchestrator.current_iteration == 2
    assert orchestrator.progress == pytest.approx(2 / 5)
    for entries in results.values():
        assert len(entries) == 4
        assert all(r.status != RUNNING for r in entries)
    assert kinds[-1] == "stopped"


def test_task_cancellation_leaves_no_running_entries():
    async def hang(model, config):
        await asyncio.sleep(10)

    orchestrator = StressTestOrchestrator(hang)

    async def cancel_mid_run():
        task = asyncio.ensure_future(orchestrator.run(["m"], StressTestConfig(prompt="p", iterations=1)))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_mid_run())

    assert orchestrator.state == STOPPED
    assert all(r.status == FAILED for r in orchestrator.results["m"])


def test_empty_model_selection_dispatches_nothing():
    fake = FakeCompletion()
    orchestrator = StressTestOrchestrator(fake)

    with pytest.raises(ConfigurationError):
        run(orchestrator, [])

    assert fake.calls == []
    assert orchestrator.state == "idle"


def test_duplicate_models_are_tested_once():
    orchestrator = StressTestOrchestrator(FakeCompletion())
    results = run(orchestrator, ["a", "a"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=1))
    assert list(results) == ["a"]
    assert len(results["a"]) == 1


def test_unsubscribe_stops_events():
    events = []
    orchestrator = StressTestOrchestrator(FakeCompletion())
    unsubscribe = orchestrator.subscribe(events.append)
    unsubscribe()

    run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=1))
    assert events == []


def test_host_metrics_are_sampled_when_enabled(monkeypatch):
    monkeypatch.setattr("utils.sample_host_usage", lambda: (2048, 35.5))
    orchestrator = StressTestOrchestrator(FakeCompletion(), sample_host_metrics=True)

    results = run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=1))

    assert results["m"][0].memory_usage_mb == 2048
    assert results["m"][0].cpu_usage_percent == 35.5


def test_host_metrics_absent_by_default():
    orchestrator = StressTestOrchestrator(FakeCompletion(), sample_host_metrics=False)
    results = run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=1))
    assert results["m"][0].memory_usage_mb is None
    assert results["m"][0].cpu_usage_percent is None


def test_failing_subscriber_does_not_stall_the_run():
    orchestrator = StressTestOrchestrator(FakeCompletion())

    def broken_display(event):
        if event.kind == "request_finished":
            raise ValueError("display crashed")

    orchestrator.subscribe(broken_display)
    results = run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=2, concurrent_requests=2))

    assert orchestrator.state == COMPLETED
    assert [r.status for r in results["m"]] == [COMPLETED] * 4

    # A second run is accepted once the first has resolved
    assert len(run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=1, concurrent_requests=1))["m"]) == 1


def test_unexpected_error_resolves_running_entries(monkeypatch):
    def broken_sampler():
        raise RuntimeError("sampler unavailable")

    monkeypatch.setattr("utils.sample_host_usage", broken_sampler)
    orchestrator = StressTestOrchestrator(FakeCompletion(), sample_host_metrics=True)

    with pytest.raises(RuntimeError):
        run(orchestrator, ["m"], StressTestConfig(prompt="p", iterations=2, concurrent_requests=1))

    assert orchestrator.state == STOPPED
    entries = orchestrator.results["m"]
    assert [r.status for r in entries] == [FAILED]
    assert "sampler unavailable" in entries[0].error


def test_result_transitions_only_once():
    running = make_result(1, RUNNING)
    done = running.complete(completion(), 120.0)

    assert done.status == COMPLETED
    assert running.status == RUNNING
    with pytest.raises(RuntimeError):
        done.fail("late failure", 130.0)


def test_summary_of_three_completed():
    summary = summarize_model([
        make_result(1, COMPLETED, 100, token_count=10, tokens_per_second=10.0),
        make_result(2, COMPLETED, 200, token_count=20, tokens_per_second=20.0),
        make_result(3, COMPLETED, 300, token_count=30, tokens_per_second=30.0),
    ])

    assert summary.total_requests == 3
    assert summary.success_rate == 100
    assert summary.average_response_time_ms == 200
    assert summary.min_response_time_ms == 100
    assert summary.max_response_time_ms == 300
    assert summary.average_tokens_per_second == 20
    assert summary.total_tokens == 60


def test_summary_ignores_failed_entries_for_timings():
    summary = summarize_model([
        make_result(1, COMPLETED, 100, token_count=5),
        make_result(2, FAILED, 9000),
    ])

    assert summary.success_rate == 50
    assert summary.failed_requests == 1
    assert summary.max_response_time_ms == 100
    assert summary.total_tokens == 5


def test_all_failed_summary_has_no_statistics():
    summary = summarize_model([make_result(i, FAILED, 50) for i in range(5)])

    assert summary.total_requests == 5
    assert summary.completed_requests == 0
    assert summary.success_rate == 0
    assert summary.average_response_time_ms is None
    assert summary.min_response_time_ms is None
    assert summary.max_response_time_ms is None
    assert summary.average_tokens_per_second is None
    assert summary.total_tokens == 0


def test_summary_of_no_results():
    summary = summarize_model([])
    assert summary.total_requests == 0
    assert summary.success_rate == 0
    assert summary.average_response_time_ms is None


def test_validate_config_rejections():
    with pytest.raises(ConfigurationError):
        validate_config(["m"], StressTestConfig(prompt="  "))
    with pytest.raises(ConfigurationError):
        validate_config(["m"], StressTestConfig(prompt="p", iterations=0))
    with pytest.raises(ConfigurationError):
        validate_config(["m"], StressTestConfig(prompt="p", concurrent_requests=0))
    with pytest.raises(ConfigurationError):
        validate_config(["a", "b", "c"], StressTestConfig(prompt="p"), max_models=2)


def test_clamped_config():
    config = StressTestConfig.clamped(prompt="p", iterations=0, concurrent_requests=99, timeout_ms=10)
    assert config.iterations == 1
    assert config.concurrent_requests == 5
    assert config.timeout_ms == 5000


def test_export_results_writes_json_and_csv(tmp_path):
    results = {
        "a": [make_result(1, COMPLETED, 100, token_count=3, tokens_per_second=30.0)],
        "b": [make_result(2, FAILED, 50)],
    }
    prefix = str(tmp_path / "stress")

    data = export_results(prefix, ["a", "b"], CONFIG, results)

    with open(f"{prefix}.json") as f:
        saved = json.load(f)
    assert saved["selected_models"] == ["a", "b"]
    assert saved["summary"]["a"]["success_rate"] == 100
    assert saved["summary"]["b"]["average_response_time_ms"] is None
    assert saved["config"]["iterations"] == CONFIG.iterations
    assert data["results"]["a"][0]["status"] == COMPLETED
    assert (tmp_path / "stress.csv").exists()


def test_summary_frame_indexed_by_model():
    frame = summary_frame(generate_summary({"a": [make_result(1, COMPLETED, 100)]}))
    assert list(frame.index) == ["a"]
    assert frame.loc["a", "success_rate"] == 100
