"""
Pure mappings between the Gemini chat shape and flat role/content messages.
"""

from typing import Any, Dict, List

EMPTY_COMPLETION_TEXT = "Sorry, the AI returned an empty response."


def _first_text(parts: Any) -> str:
    if isinstance(parts, list) and parts and isinstance(parts[0], dict):
        text = parts[0].get("text")
        if isinstance(text, str):
            return text
    return ""


def gemini_to_messages(body: Dict[str, Any]) -> List[Dict[str, str]]:
    """Flatten ``systemInstruction`` + ``contents`` into chat messages.

    Role ``model`` becomes ``assistant``; every other role is ``user``.
    """
    messages: List[Dict[str, str]] = []

    system_instruction = body.get("systemInstruction")
    if isinstance(system_instruction, dict):
        system_text = _first_text(system_instruction.get("parts"))
        if system_text:
            messages.append({"role": "system", "content": system_text})

    contents = body.get("contents") or []
    if not isinstance(contents, list):
        raise ValueError("contents must be a list")

    for content in contents:
        if not isinstance(content, dict):
            raise ValueError("contents entries must be objects")
        role = "assistant" if content.get("role") == "model" else "user"
        messages.append({"role": role, "content": _first_text(content.get("parts"))})

    return messages


def completion_to_gemini(text: Any) -> Dict[str, Any]:
    """Wrap a plain completion in a ``candidates`` envelope."""
    if not isinstance(text, str) or not text:
        text = EMPTY_COMPLETION_TEXT
    return {
        "candidates": [
            {
                "content": {
                    "parts": [{"text": text}],
                    "role": "model",
                },
            }
        ]
    }
