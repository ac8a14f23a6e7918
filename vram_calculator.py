"""
VRAM requirement estimation from a model's on-disk size

The estimate is a coarse heuristic: weights scaled by a precision
multiplier, plus a linear KV-cache term and a fixed framework overhead.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from config import VRAM_CONFIG
from ollama_client import ModelDescriptor

MB = 1024 * 1024
GB = 1024 * MB

PRECISION_MULTIPLIERS = {
    "fp32": 2.0,
    "fp16": 1.0,
    "int8": 0.5,
    "int4": 0.25,
}

PRECISIONS = list(PRECISION_MULTIPLIERS)


@dataclass(frozen=True)
class CalculationInput:
    model: ModelDescriptor
    context_length: int
    precision: str
    batch_size: int
    framework_overhead_mb: float


@dataclass(frozen=True)
class CalculationResult:
    base_model_vram_mb: float
    context_buffer_mb: float
    framework_overhead_mb: float
    total_vram_gb: float
    precision: str
    context_length: int
    batch_size: int

    @property
    def total_vram_mb(self) -> float:
        return self.total_vram_gb * 1024


def estimated_layers(model_size_bytes: int) -> int:
    """Guess transformer depth from weight size in GB.

    Not derived from any architecture; replace with real layer counts when
    the model metadata provides them.
    """
    model_size_gb = model_size_bytes / GB

    if model_size_gb < 1:
        return 12
    if model_size_gb < 8:
        return 32
    if model_size_gb < 15:
        return 40
    if model_size_gb < 30:
        return 60
    return 80


def estimate(params: CalculationInput) -> CalculationResult:
    """Estimate VRAM for a model at a given precision, context and batch size.

    Pure and deterministic. Inputs are expected to be sanitised with
    clamp_input() beforehand.
    """
    base_model_mb = (params.model.size_bytes / MB) * PRECISION_MULTIPLIERS[params.precision]

    # 2 bytes per token per layer per sequence in the batch
    layers = estimated_layers(params.model.size_bytes)
    context_buffer_mb = (params.context_length * 2 * layers * params.batch_size) / MB

    total_vram_mb = base_model_mb + context_buffer_mb + params.framework_overhead_mb

    return CalculationResult(
        base_model_vram_mb=base_model_mb,
        context_buffer_mb=context_buffer_mb,
        framework_overhead_mb=params.framework_overhead_mb,
        total_vram_gb=total_vram_mb / 1024,
        precision=params.precision,
        context_length=params.context_length,
        batch_size=params.batch_size,
    )


def _clamp(value, low, high):
    return max(low, min(high, value))


def clamp_input(
    model: ModelDescriptor,
    context_length: Optional[int] = None,
    precision: Optional[str] = None,
    batch_size: Optional[int] = None,
    framework_overhead_mb: Optional[float] = None,
) -> CalculationInput:
    """Build a CalculationInput with every numeric field forced into range.

    Missing values fall back to VRAM_CONFIG defaults. Unknown precisions
    raise ValueError since there is no sensible value to clamp to.
    """
    if context_length is None:
        context_length = VRAM_CONFIG["context_length"]
    if precision is None:
        precision = VRAM_CONFIG["precision"]
    if batch_size is None:
        batch_size = VRAM_CONFIG["batch_size"]
    if framework_overhead_mb is None:
        framework_overhead_mb = VRAM_CONFIG["framework_overhead_mb"]

    if precision not in PRECISION_MULTIPLIERS:
        raise ValueError(f"Unknown precision '{precision}', expected one of {', '.join(PRECISIONS)}")

    return CalculationInput(
        model=model,
        context_length=int(_clamp(context_length, max(1, VRAM_CONFIG["min_context"]), VRAM_CONFIG["max_context"])),
        precision=precision,
        batch_size=int(_clamp(batch_size, max(1, VRAM_CONFIG["min_batch"]), VRAM_CONFIG["max_batch"])),
        framework_overhead_mb=float(
            _clamp(framework_overhead_mb, VRAM_CONFIG["min_overhead_mb"], VRAM_CONFIG["max_overhead_mb"])
        ),
    )


def estimate_all_precisions(
    model: ModelDescriptor,
    context_length: Optional[int] = None,
    batch_size: Optional[int] = None,
    framework_overhead_mb: Optional[float] = None,
) -> List[CalculationResult]:
    return [
        estimate(clamp_input(model, context_length, precision, batch_size, framework_overhead_mb))
        for precision in PRECISIONS
    ]


GPU_TIERS = [
    (8, "Consumer", ["RTX 4060", "RTX 3070", "RX 6700 XT"]),
    (16, "Mid-range", ["RTX 4070 Ti", "RTX 3080", "RX 6800 XT"]),
    (24, "High-end", ["RTX 4080", "RTX 3090", "RTX 4090"]),
]
ENTERPRISE_GPUS = ["RTX 4090", "A100", "H100", "Multiple GPUs"]


def gpu_tier(total_vram_gb: float) -> str:
    for limit, tier, _ in GPU_TIERS:
        if total_vram_gb < limit:
            return tier
    return "Enterprise"


def gpu_recommendations(total_vram_gb: float) -> List[str]:
    for limit, _, cards in GPU_TIERS:
        if total_vram_gb < limit:
            return list(cards)
    return list(ENTERPRISE_GPUS)


def result_to_dict(result: CalculationResult) -> Dict:
    return {
        "base_model_vram_mb": result.base_model_vram_mb,
        "context_buffer_mb": result.context_buffer_mb,
        "framework_overhead_mb": result.framework_overhead_mb,
        "total_vram_mb": result.total_vram_mb,
        "total_vram_gb": result.total_vram_gb,
        "precision": result.precision,
        "context_length": result.context_length,
        "batch_size": result.batch_size,
        "gpu_tier": gpu_tier(result.total_vram_gb),
        "recommended_gpus": gpu_recommendations(result.total_vram_gb),
    }


def format_breakdown(model_name: str, result: CalculationResult) -> str:
    """Human readable breakdown for clipboard/console output"""
    from utils import format_bytes

    return "\n".join([
        f"VRAM Calculation Results for {model_name}",
        f"Base Model: {format_bytes(result.base_model_vram_mb * MB)}",
        f"Context Buffer: {format_bytes(result.context_buffer_mb * MB)}",
        f"Framework Overhead: {format_bytes(result.framework_overhead_mb * MB)}",
        f"Total VRAM: {format_bytes(result.total_vram_gb * GB)}",
        f"GPU Category: {gpu_tier(result.total_vram_gb)}",
    ])
