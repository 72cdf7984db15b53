# -*- coding: utf-8 -*-
"""
Serverless / local entry point for the webhook server.

Routes are registered per channel listed in ENABLED_MESSENGERS:
    POST /webhook/terminal, /webhook/line, /webhook/telegram, ...
    GET  /health
"""

import sys
from pathlib import Path

# Add project root to sys.path for local development
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from aiexpense.server import create_app

app = create_app()


# Local development entry point
if __name__ == "__main__":
    app.run(debug=True, port=5000)
