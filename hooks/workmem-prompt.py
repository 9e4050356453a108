#!/usr/bin/env python3
"""Claude Code UserPromptSubmit hook for working-memory context injection.

This hook runs BEFORE the user's prompt is processed. workmem classifies
the prompt, checks it for a correction of the previous assistant message,
and returns the relevant working-memory blocks (corrections, session state,
plan, tasks, known tool issues, proactive alerts, scratch pad) followed by a
resource-state line built from the transcript.

Usage:
    Configure in ~/.claude/settings.json:
    {
        "hooks": {
            "UserPromptSubmit": [
                {
                    "hooks": [
                        {
                            "type": "command",
                            "command": "python /path/to/workmem/hooks/workmem-prompt.py",
                            "timeout": 5
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
        "hook_event_name": "UserPromptSubmit",
        "prompt": "What's left on the migration?"
    }

Output:
    - JSON with hookSpecificOutput.additionalContext when there is context
"""

import json
import subprocess
import sys
from pathlib import Path
from typing import Optional


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


def last_assistant_text(transcript_path: Optional[str]) -> Optional[str]:
    """Text of the last assistant message in a JSONL transcript."""
    if not transcript_path:
        return None
    path = Path(transcript_path).expanduser()
    if not path.exists():
        return None

    last = None
    for line in path.read_text().splitlines():
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        message = entry.get("message", entry) if isinstance(entry, dict) else None
        if not isinstance(message, dict) or message.get("role") != "assistant":
            continue
        content = message.get("content", "")
        if isinstance(content, list):
            content = " ".join(
                c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text"
            )
        if isinstance(content, str) and content.strip():
            last = content
    return last


def main():
    """Main hook entry point."""
    try:
        hook_input = read_hook_input()
        prompt = hook_input.get("prompt", "")
        if not prompt:
            return

        session_id = hook_input.get("session_id") or "unknown"
        cwd = hook_input.get("cwd") or str(Path.cwd())

        transcript_path = hook_input.get("transcript_path")
        result = call_workmem("memory_context", {
            "message": prompt,
            "session_key": session_id,
            "previous_agent_message": last_assistant_text(transcript_path),
            "transcript_path": transcript_path,
        }, cwd)

        context = result.get("context") if result.get("success") else None
        if context:
            output = {
                "hookSpecificOutput": {
                    "hookEventName": "UserPromptSubmit",
                    "additionalContext": context,
                }
            }
            print(json.dumps(output))

    except BrokenPipeError:
        pass
    except Exception as e:
        print(f"<!-- workmem-prompt hook error: {e} -->", file=sys.stderr)


if __name__ == "__main__":
    main()
