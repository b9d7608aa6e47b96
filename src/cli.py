"""Console wrapper for running the attach MCP server as an installed script.

This module exposes a `main()` function that re-uses the server startup path
from `src/mcp_server.py`, printing the server's help text for `--help`.
"""

import sys
from pathlib import Path

# Make `src` importable when run from a checkout rather than an install.
project_root = Path(__file__).resolve().parents[1]
if str(project_root / "src") not in sys.path:
    sys.path.insert(0, str(project_root / "src"))

import mcp_server as server  # noqa: E402


def main(argv=None):
    """Run the MCP server the same way as `python src/mcp_server.py`."""
    if argv is None:
        argv = sys.argv[1:]
    if "--help" in argv or "-h" in argv:
        server.print_help()
        return 0
    try:
        server.mcp.run()
    except SystemExit:
        raise
    except Exception as exc:
        print(f"Error starting MCP server: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
