from __future__ import annotations

import json
import re
from typing import Any

from lib.errors import ParseError
from lib.markdown_normalizer import strip_code_fences


_JSON_BLOCK_RE = re.compile(r"\[[\s\S]*\]|\{[\s\S]*\}")


def parse_json_reply(raw: str) -> Any:
    """
    Parse JSON out of a model reply.

    1. remove markdown code fences if the model adds them
    2. json.loads the whole reply
    3. otherwise json.loads the outermost [...] / {...} block
    Raises ParseError when nothing parses.
    """
    text = strip_code_fences(raw or "")
    if not text:
        raise ParseError("Empty reply where JSON was expected", raw=raw or "")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    m = _JSON_BLOCK_RE.search(text)
    if m:
        try:
            return json.loads(m.group(0))
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON in reply: {e}", raw=raw) from e

    raise ParseError("No JSON found in reply", raw=raw)
