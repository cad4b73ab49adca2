#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[tab-bridge] driver={os.environ.get('TAB_BRIDGE_DRIVER_URL', 'ws://localhost:8765')} | "
    f"agents={os.environ.get('TAB_BRIDGE_AGENT_SOCKET') or os.environ.get('TAB_BRIDGE_AGENT_PORT', '8766')} | "
    f"cdp={os.environ.get('TAB_BRIDGE_CDP_HOST', '127.0.0.1')}:{os.environ.get('TAB_BRIDGE_CDP_PORT', '9222')}",
    file=sys.stderr,
)

from tab_bridge.main import main  # noqa: E402

if __name__ == "__main__":
    main()
