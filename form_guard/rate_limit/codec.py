"""
Window State Codec
==================
Serializes ``WindowState`` to the opaque string the storage backends persist.
"""

import json
from typing import Optional, Union

from .models import WindowState

CODEC_VERSION = 1


def encode_state(state: WindowState) -> str:
    """Encode a window state as compact JSON."""
    return json.dumps(
        {
            "v": CODEC_VERSION,
            "s": float(state.window_start),
            "c": state.current_count,
            "p": state.previous_count,
        },
        separators=(",", ":"),
        sort_keys=True,
    )


def decode_state(raw: Optional[Union[str, bytes]]) -> Optional[WindowState]:
    """
    Decode a stored payload.
    
    Returns:
        The window state, or None when nothing is stored
        
    Raises:
        ValueError: If the payload is malformed or of an unknown version
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid window state payload: {e}") from e
    
    if not isinstance(data, dict) or data.get("v") != CODEC_VERSION:
        raise ValueError(f"Unsupported window state payload: {raw!r}")
    
    try:
        window_start = float(data["s"])
        current = int(data["c"])
        previous = int(data["p"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Incomplete window state payload: {raw!r}") from e
    
    if current < 0 or previous < 0:
        raise ValueError(f"Negative counts in window state payload: {raw!r}")
    
    return WindowState(window_start=window_start, current_count=current, previous_count=previous)
