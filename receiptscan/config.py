"""TOML configuration loader for receipt scanning."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class GroqVisionConfig:
    api_key: str = ""
    model: str = "meta-llama/llama-4-scout-17b-16e-instruct"


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class VisionConfig:
    backend: str = "groq"
    groq: GroqVisionConfig = field(default_factory=GroqVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)


@dataclass
class RetryConfig:
    max_retries: int = 3


@dataclass
class DatabaseConfig:
    path: str = "~/.config/receiptscan/receipts.db"


@dataclass
class ExportConfig:
    dir: str = "~/.config/receiptscan/exports"


@dataclass
class ScanConfig:
    vision: VisionConfig = field(default_factory=VisionConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


def load_config(path: str | Path | None = None) -> ScanConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys left empty in the file are read from environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path).expanduser()
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    vis = raw.get("vision", {})
    rty = raw.get("retry", {})
    dbs = raw.get("database", {})
    exp = raw.get("export", {})

    groq_cfg = vis.get("groq", {})
    claude_cfg = vis.get("claude", {})
    gemini_cfg = vis.get("gemini", {})

    # Resolve API keys: config file → environment variable
    groq_api_key = groq_cfg.get("api_key", "") or os.environ.get("GROQ_API_KEY", "")
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )

    max_retries = rty.get("max_retries", 3)
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
        raise ValueError(f"retry.max_retries must be a positive integer: {max_retries!r}")

    return ScanConfig(
        vision=VisionConfig(
            backend=vis.get("backend", "groq"),
            groq=GroqVisionConfig(
                api_key=groq_api_key,
                model=groq_cfg.get("model", GroqVisionConfig.model),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", ClaudeVisionConfig.model),
            ),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", GeminiVisionConfig.model),
            ),
        ),
        retry=RetryConfig(max_retries=max_retries),
        database=DatabaseConfig(path=dbs.get("path", DatabaseConfig.path)),
        export=ExportConfig(dir=exp.get("dir", ExportConfig.dir)),
    )
