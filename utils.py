"""
Utility functions for the Ollama dashboard
"""

import re
import subprocess
from datetime import datetime
from typing import Dict, Optional, Tuple

import psutil

from ollama_client import OllamaClient


def check_system_requirements(server_url: Optional[str] = None) -> Dict[str, bool]:
    """Check if the dashboard can reach a server and has its packages"""
    requirements = {
        "ollama_server_reachable": False,
        "python_packages": False
    }

    requirements["ollama_server_reachable"] = OllamaClient(server_url).is_available()

    try:
        import fastapi
        import matplotlib
        import ollama
        import pandas
        import requests
        requirements["python_packages"] = True
    except ImportError:
        pass

    return requirements


def get_gpu_info() -> Dict:
    """Get local GPU information using nvidia-smi"""
    try:
        result = subprocess.run([
            "nvidia-smi",
            "--query-gpu=name,memory.total,memory.used,memory.free,utilization.gpu",
            "--format=csv,noheader,nounits"
        ], capture_output=True, text=True)
    except FileNotFoundError:
        return {}

    if result.returncode != 0:
        return {}

    # First GPU only
    line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
    parts = [p.strip() for p in line.split(',')]
    if len(parts) < 5:
        return {}

    try:
        return {
            "name": parts[0],
            "memory_total_mb": int(parts[1]),
            "memory_used_mb": int(parts[2]),
            "memory_free_mb": int(parts[3]),
            "utilization_percent": int(parts[4])
        }
    except ValueError:
        return {}


def sample_host_usage() -> Tuple[float, float]:
    """Memory used (MB) and CPU load (%) of the machine running the dashboard"""
    memory_mb = psutil.virtual_memory().used / (1024 * 1024)
    cpu_percent = psutil.cpu_percent(interval=None)
    return round(memory_mb), round(cpu_percent, 2)


def format_bytes(bytes_val: float) -> str:
    """Format bytes into human readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if abs(bytes_val) < 1024.0:
            return f"{bytes_val:.1f} {unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.1f} PB"


def output_prefix(kind: str, label: Optional[str] = None) -> str:
    """Timestamped filename prefix such as stress_test_llama3_20250101_120000"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    if label:
        safe_label = re.sub(r"[^A-Za-z0-9._-]+", "_", label).strip("_")
        return f"{kind}_{safe_label}_{timestamp}"
    return f"{kind}_{timestamp}"


def print_system_info(server_url: Optional[str] = None):
    """Print system information for debugging"""
    print("System Information:")
    print("-" * 40)

    # CPU info
    print(f"CPU: {psutil.cpu_count()} cores")
    print(f"RAM: {format_bytes(psutil.virtual_memory().total)}")

    # GPU info
    gpu_info = get_gpu_info()
    if gpu_info:
        print(f"GPU: {gpu_info['name']}")
        print(f"VRAM: {gpu_info['memory_total_mb']} MB")
        print(f"VRAM Used: {gpu_info['memory_used_mb']} MB")
        print(f"GPU Utilization: {gpu_info['utilization_percent']}%")
    else:
        print("GPU: Not detected or nvidia-smi not available")

    # Requirements check
    print("\nRequirements Check:")
    print("-" * 40)
    requirements = check_system_requirements(server_url)
    for req, status in requirements.items():
        status_str = "✓" if status else "✗"
        print(f"{status_str} {req.replace('_', ' ').title()}")

    print()
