import json
import ast
import re
from typing import Any

def safe_json_loads(data: str) -> Any:
    """Safely parse JSON from a possibly malformed string.

    Tries ``json.loads`` first. If that fails, attempts ``ast.literal_eval`` and
    finally extracts the first JSON object found in the string.
    Returns an empty dict on failure.
    """
    if data is None:
        return {}
    try:
        return json.loads(data)
    except Exception:
        pass
    try:
        return ast.literal_eval(data)
    except Exception:
        pass
    match = re.search(r"{.*}", data, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except Exception:
            pass
    return {}


def unwrap_body(payload: Any) -> Any:
    """Return the ``body`` of a function-invocation style response.

    Serverless handlers reply ``{"statusCode": 200, "body": "<json string>"}``;
    the body may itself be JSON-encoded once more. Payloads without a body are
    returned unchanged. Parsing is strict: text that is not JSON raises
    ``ValueError`` instead of being read as an empty object.
    """
    if isinstance(payload, (str, bytes)):
        payload = json.loads(payload)
    if isinstance(payload, dict) and "body" in payload:
        body = payload["body"]
        if isinstance(body, str):
            return json.loads(body) if body.strip() else None
        return body
    return payload


def dumps_result(result: Any) -> str:
    """Serialise an operation result the way tool outputs are returned."""
    return json.dumps(result, indent=2, ensure_ascii=False)
