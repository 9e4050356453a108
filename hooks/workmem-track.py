#!/usr/bin/env python3
"""Claude Code PostToolUse hook for failure learning and scratch capture.

Failed tool calls are classified and folded into the tool failure store.
Successful results from data-producing tools (web fetches, searches,
browser snapshots, MCP tools) are captured into the session scratch pad.

Usage:
    Configure in ~/.claude/settings.json:
    {
        "hooks": {
            "PostToolUse": [
                {
                    "matcher": "Bash|WebFetch|WebSearch|mcp__.*",
                    "hooks": [
                        {
                            "type": "command",
                            "command": "python /path/to/workmem/hooks/workmem-track.py",
                            "timeout": 5
                        }
                    ]
                }
            ]
        }
    }

Input (via stdin JSON):
    {
        "tool_name": "WebFetch",
        "tool_input": {"url": "https://example.com"},
        "tool_response": {"result": "..."},
        "session_id": "abc123",
        "cwd": "/project/root"
    }
"""

import json
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Claude Code tool names mapped to the names workmem captures
TOOL_NAME_MAP = {
    "WebFetch": "web_fetch",
    "WebSearch": "web_search",
    "Bash": "exec",
}


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


def call_workmem(tool_name: str, args: dict, cwd: str, timeout: int = 4) -> dict:
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


def response_text(tool_response) -> str:
    """Flatten a tool response into text."""
    if isinstance(tool_response, str):
        return tool_response
    if isinstance(tool_response, dict):
        for key in ("result", "output", "stdout", "content", "error", "stderr"):
            value = tool_response.get(key)
            if isinstance(value, str) and value:
                return value
    return json.dumps(tool_response, default=str)


def is_error_response(tool_response) -> bool:
    if not isinstance(tool_response, dict):
        return False
    if tool_response.get("is_error") or tool_response.get("isError"):
        return True
    if tool_response.get("success") is False:
        return True
    return bool(tool_response.get("stderr")) and tool_response.get("exit_code", 0) != 0


def describe_input(tool_input: dict) -> Optional[str]:
    for key in ("url", "query", "command", "pattern"):
        value = tool_input.get(key)
        if value:
            return str(value)[:200]
    return None


def main():
    hook_input = read_hook_input()

    tool_name = hook_input.get("tool_name", "")
    tool_input = hook_input.get("tool_input", {}) or {}
    tool_response = hook_input.get("tool_response", {})
    session_id = hook_input.get("session_id") or "unknown"
    cwd = hook_input.get("cwd") or str(Path.cwd())

    log_path = Path.home() / ".claude" / "hooks" / "logs" / "workmem-track.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if not tool_name:
        return

    name = TOOL_NAME_MAP.get(tool_name, tool_name.lower())
    text = response_text(tool_response)

    try:
        if is_error_response(tool_response):
            result = call_workmem("tool_failure_record", {
                "tool_name": name,
                "error_text": text,
            }, cwd)
        else:
            result = call_workmem("scratch_capture", {
                "session_key": session_id,
                "tool_name": name,
                "output": text,
                "context": describe_input(tool_input),
            }, cwd)

        if not result.get("success"):
            with open(log_path, "a") as f:
                f.write(f"{datetime.now().isoformat()} | WARN: {result.get('error', 'unknown error')}\n")
    except BrokenPipeError:
        pass
    except Exception as e:
        try:
            with open(log_path, "a") as f:
                f.write(f"{datetime.now().isoformat()} | ERROR: {e}\n")
        except Exception:
            pass


if __name__ == "__main__":
    main()
