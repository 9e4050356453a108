#!/usr/bin/env python3
"""Claude Code PreCompact hook for preserving working memory.

This hook runs BEFORE a compact operation (context window compression).
It hands the transcript to workmem, which extracts decisions, tasks,
facts, corrections, preferences and errors into memory/compaction-facts/
and captures data-producing tool results into the session scratch pad.

Usage:
    Configure in ~/.claude/settings.json:
    {
        "hooks": {
            "PreCompact": [
                {
                    "matcher": "auto|manual",
                    "hooks": [
                        {
                            "type": "command",
                            "command": "python /path/to/workmem/hooks/workmem-compact.py",
                            "timeout": 15
                        }
                    ]
                }
            ]
        }
    }

Input (via stdin JSON):
    {
        "session_id": "abc123",
        "transcript_path": "/path/to/transcript.jsonl",
        "cwd": "/project/root",
        "hook_event_name": "PreCompact",
        "trigger": "auto"
    }

Failures are logged and never block compaction.
"""

import json
import subprocess
import sys
from datetime import datetime
from pathlib import Path


def read_hook_input() -> dict:
    """Read hook input from stdin."""
    try:
        if sys.stdin.isatty():
            return {}
        stdin_data = sys.stdin.read()
        if stdin_data:
            return json.loads(stdin_data)
    except (json.JSONDecodeError, IOError):
        pass
    return {}


def call_workmem(tool_name: str, args: dict, cwd: str, timeout: int = 12) -> dict:
    """Call a workmem tool directly via --call mode."""
    workmem_dir = Path(__file__).parent.parent
    if (workmem_dir / "src" / "workmem" / "__main__.py").exists():
        cmd = ["uv", "run", "--directory", str(workmem_dir), "python", "-m", "workmem"]
    else:
        cmd = ["uv", "run", "python", "-m", "workmem"]
    cmd += ["--workspace-dir", cwd, "--call", tool_name, "--args", json.dumps(args)]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        if result.returncode != 0:
            return {"success": False, "error": f"workmem failed: {result.stderr}"}
        return json.loads(result.stdout)
    except subprocess.TimeoutExpired:
        return {"success": False, "error": "workmem timed out"}
    except json.JSONDecodeError as e:
        return {"success": False, "error": f"Invalid JSON response: {e}"}
    except FileNotFoundError:
        return {"success": False, "error": "uv or python not found"}


def main():
    hook_input = read_hook_input()
    session_id = hook_input.get("session_id") or "unknown"
    transcript_path = hook_input.get("transcript_path")
    cwd = hook_input.get("cwd") or str(Path.cwd())

    log_path = Path.home() / ".claude" / "hooks" / "logs" / "workmem-compact.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if not transcript_path:
        return

    try:
        result = call_workmem(
            "compaction_extract",
            {"session_key": session_id, "transcript_path": str(Path(transcript_path).expanduser())},
            cwd,
        )
        with open(log_path, "a") as f:
            if result.get("success"):
                f.write(
                    f"{datetime.now().isoformat()} | session={session_id} | "
                    f"facts={result.get('facts_count', 0)} | file={result.get('file_path')}\n"
                )
            else:
                f.write(f"{datetime.now().isoformat()} | WARN: {result.get('error', 'unknown error')}\n")
    except Exception as e:
        try:
            with open(log_path, "a") as f:
                f.write(f"{datetime.now().isoformat()} | ERROR: {e}\n")
        except Exception:
            pass


if __name__ == "__main__":
    main()
