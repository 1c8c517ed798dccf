import logging
import os
import sys
from pathlib import Path

import uvicorn

# 项目根目录优先于已安装的同名包
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.logger import setup_logging  # noqa: E402


def main():
    """Serve the Mandala Chart API (web.backend.app) with uvicorn."""
    level_name = os.getenv("MANDALA_LOG_LEVEL", "INFO").upper()
    setup_logging(log_level=getattr(logging, level_name, logging.INFO))

    reload_enabled = os.getenv("MANDALA_RELOAD", "0").lower() in {"1", "true", "yes"}
    host = os.getenv("MANDALA_HOST", "127.0.0.1")
    port = int(os.getenv("MANDALA_PORT", "8020"))

    uvicorn.run(
        "web.backend.app:app",
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=["web", "core"] if reload_enabled else None,
    )


if __name__ == "__main__":
    main()
