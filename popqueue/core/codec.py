import json
from typing import Any
from urllib.parse import quote, unquote

# Characters left alone by each escaping stage.
URI_COMPONENT_SAFE = "-_.!~*'()"
ESCAPE_SAFE = "@*_+-./"


def encode_body(value: Any) -> str:
    """Serialize ``value`` to JSON and escape it twice for query transport."""
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    escaped = quote(quote(text, safe=URI_COMPONENT_SAFE), safe=ESCAPE_SAFE)
    # The outer stage escapes "~" too, which quote() never does.
    return escaped.replace("~", "%7E")


def decode_body(body: str) -> Any:
    return json.loads(unquote(unquote(body)))
