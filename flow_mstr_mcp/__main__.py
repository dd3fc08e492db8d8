import sys

from flow_mstr_mcp.cli import main

sys.exit(main())
