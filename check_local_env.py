"""Validate the local Third Eye backend environment.

Usage:
  set -a
  source .env
  set +a
  python3 check_local_env.py
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path


ENV_PATH = Path(__file__).resolve().parent / ".env"
PROVIDER_KEYS = ("OPENROUTER_API_KEY", "GEMINI_API_KEY", "GROQ_API_KEY")
KNOWN_BACKENDS = ("openrouter", "gemini", "groq")


def load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def check_float(name: str, errors: list[str]) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return None


def main() -> int:
    load_env_file(ENV_PATH)

    py_version = sys.version_info
    if py_version < (3, 11):
        print(
            "Unsupported Python version: "
            f"{py_version.major}.{py_version.minor}. "
            "Use Python 3.11 or newer for this repo."
        )
        return 1

    errors: list[str] = []
    warnings: list[str] = []

    configured = [name for name in PROVIDER_KEYS if os.getenv(name, "").strip()]
    if not configured:
        errors.append(
            "No vision provider key is set. Set at least one of " + ", ".join(PROVIDER_KEYS) + "."
        )

    raw_order = os.getenv("THIRDEYE_BACKEND_ORDER", "").strip()
    if raw_order:
        names = re.findall(r"[a-zA-Z]+", raw_order)
        unknown = [name for name in names if name.lower() not in KNOWN_BACKENDS]
        if unknown:
            errors.append(f"THIRDEYE_BACKEND_ORDER names unknown backends: {', '.join(unknown)}")

    low = check_float("THIRDEYE_TORCH_LOW_THRESHOLD", errors)
    high = check_float("THIRDEYE_TORCH_HIGH_THRESHOLD", errors)
    if low is not None and high is not None and low >= high:
        errors.append("THIRDEYE_TORCH_LOW_THRESHOLD must be below THIRDEYE_TORCH_HIGH_THRESHOLD")

    number = re.sub(r"\D", "", os.getenv("THIRDEYE_EMERGENCY_NUMBER", ""))
    if not number:
        warnings.append(
            "THIRDEYE_EMERGENCY_NUMBER is not set. Emergency mode will locate the user but cannot share it."
        )

    print(f"Loaded env file: {ENV_PATH}")
    if configured:
        print("Vision providers: " + ", ".join(name.split("_")[0].lower() for name in configured))
    if errors:
        print("\nErrors:")
        for item in errors:
            print(f"  - {item}")
    if warnings:
        print("\nWarnings:")
        for item in warnings:
            print(f"  - {item}")

    if errors:
        print("\nLocal environment is not ready.")
        return 1

    print("\nLocal environment looks ready.")
    print("Next:")
    print("  uvicorn thirdeye.main:app --reload")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
