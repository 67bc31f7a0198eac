"""
Run log and optional JSON manifest.

Why this exists:
- Logging goes through one place so console messages stay consistent and
  are captured for the manifest.
- The manifest (inputs, per-item outcomes, timeline) is only written when a
  caller asks for it; the batch itself leaves nothing behind but images.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
import sys
from typing import Any, Dict, List, Optional, TextIO

from .utils import atomic_output, ensure_dir


LEVELS = ("debug", "info", "warning", "error")


def _iso_now() -> str:
    """Return an ISO-8601 timestamp in UTC."""

    return datetime.now(timezone.utc).isoformat()


@dataclass
class ManifestRecorder:
    """
    Collect logs and per-item actions for one batch.

    Only the orchestrator thread writes to a recorder.
    """

    tool_name: str
    tool_version: str
    command: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    verbosity: str = "normal"
    console_stream: Optional[TextIO] = field(default_factory=lambda: sys.stderr)
    started_at: str = field(default_factory=_iso_now)
    logs: List[Dict[str, Any]] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)

    def _should_print(self, level: str) -> bool:
        if self.console_stream is None:
            return False
        if self.verbosity == "quiet":
            return level == "error"
        if self.verbosity == "verbose":
            return True
        return level in {"info", "warning", "error"}

    def log(self, message: str, level: str = "info") -> None:
        """Record a log message and also print it to the console."""

        if level not in LEVELS:
            level = "info"
        self.logs.append({"timestamp": _iso_now(), "level": level, "message": message})

        if self._should_print(level):
            rendered = f"[{level}] {message}" if self.verbosity == "verbose" else message
            print(rendered, file=self.console_stream)

    def add_action(self, action: str, status: str, **details: Any) -> None:
        """
        Add an action record.

        Example: add_action("split_image", "written", ordinal=0, source="a.jpg").
        """

        entry: Dict[str, Any] = {
            "timestamp": _iso_now(),
            "action": action,
            "status": status,
        }
        entry.update(details)
        self.actions.append(entry)

    def action_counts(self) -> Dict[str, int]:
        """Count actions by status (written, skipped, dry-run, error)."""

        counts: Dict[str, int] = {}
        for action in self.actions:
            status = action.get("status", "unknown")
            counts[status] = counts.get(status, 0) + 1
        return counts

    def build_manifest(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        """Assemble the final manifest structure."""

        return {
            "tool": self.tool_name,
            "version": self.tool_version,
            "command": self.command,
            "started_at": self.started_at,
            "ended_at": _iso_now(),
            "options": self.options,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "summary": summary,
            "action_counts": self.action_counts(),
            "actions": self.actions,
            "logs": self.logs,
        }

    def write_manifest(self, path: Path, summary: Dict[str, Any]) -> None:
        """Write the manifest JSON atomically."""

        ensure_dir(path.parent, dry_run=False)
        manifest = self.build_manifest(summary)
        with atomic_output(path) as temp_path:
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(manifest, handle, indent=2, ensure_ascii=True)
