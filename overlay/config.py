# overlay/config.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

ENABLE_ENV = "DOC_OVERLAY"
MANIFEST_ENV = "DOC_OVERLAY_MANIFEST"


@dataclass
class AnalyzerConfig:
    command: List[str] = field(default_factory=list)
    manifest_path: Optional[str] = None
    timeout_seconds: float = 30.0


@dataclass
class OverlayConfig:
    enabled: bool = False
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    max_concurrency: int = 4
    fuzzy: bool = True
    max_slack: Optional[int] = None
    min_annotation_length: int = 1

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.analyzer.timeout_seconds <= 0:
            raise ValueError("analyzer.timeout_seconds must be > 0")


def resolve_manifest(configured: Optional[str], env: Mapping[str, str]) -> Optional[str]:
    """
    Pick the project manifest handed to the analyzer so it can see the same
    dependencies as the documented project.

    Order: environment override, configured path, ./Cargo.toml.
    """
    candidates = []
    if env.get(MANIFEST_ENV):
        candidates.append(env[MANIFEST_ENV])
    if configured:
        candidates.append(configured)
    candidates.append("Cargo.toml")

    for path in candidates:
        if os.path.isfile(path):
            logger.info("overlay: using manifest from %s", path)
            return path
    logger.info("overlay: no manifest found, external deps won't have annotations")
    return None


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> OverlayConfig:
    """
    Build an OverlayConfig from an optional YAML file plus the environment.

    The environment toggle wins over the file's `enabled` flag when present.
    """
    if env is None:
        env = os.environ

    cfg = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

    analyzer_cfg = cfg.get("analyzer", {}) or {}
    reconcile_cfg = cfg.get("reconcile", {}) or {}

    command = analyzer_cfg.get("command") or []
    if isinstance(command, str):
        command = command.split()

    max_slack = reconcile_cfg.get("max_slack")

    enabled = bool(cfg.get("enabled", False))
    if ENABLE_ENV in env:
        enabled = env[ENABLE_ENV].strip().lower() not in ("0", "false", "no", "off")

    return OverlayConfig(
        enabled=enabled,
        analyzer=AnalyzerConfig(
            command=list(command),
            manifest_path=resolve_manifest(analyzer_cfg.get("manifest_path"), env),
            timeout_seconds=float(analyzer_cfg.get("timeout_seconds", 30.0)),
        ),
        max_concurrency=int(cfg.get("max_concurrency", 4)),
        fuzzy=bool(reconcile_cfg.get("fuzzy", True)),
        max_slack=int(max_slack) if max_slack is not None else None,
        min_annotation_length=int(cfg.get("min_annotation_length", 1)),
    )
