"""
Write the OpenAPI schema to interfaces/openapi.json.

Usage:
    python -m stock_ledger.api.generate_openapi [output_dir]

The /ws/stock endpoint is not part of OpenAPI; its description from
/api/v1/websocket-info is attached as `x-websocket-endpoints`.
"""

import json
import sys
from pathlib import Path

from stock_ledger.api.main import app, websocket_info


# PUBLIC_INTERFACE
def write_openapi(output_dir: str = "interfaces") -> Path:
    """Render the app's schema plus the WebSocket extension and return the file path."""
    schema = app.openapi()
    schema["x-websocket-endpoints"] = websocket_info()["endpoints"]

    target = Path(output_dir)
    target.mkdir(parents=True, exist_ok=True)
    path = target / "openapi.json"
    path.write_text(json.dumps(schema, indent=2))
    return path


if __name__ == "__main__":
    print(write_openapi(*sys.argv[1:2]))
