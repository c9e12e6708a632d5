"""
Entry point for the orthodraw service.

Running this script with ``python run.py`` starts the FastAPI server
defined in ``backend/orthodraw/main.py``.  The ``backend`` directory is
added to the Python path first so the package imports without being
installed.  Set ``ORTHODRAW_LOG_LEVEL`` to change the log level
(default ``INFO``).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import uvicorn

logging.basicConfig(
    level=os.getenv("ORTHODRAW_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> None:
    """Run the Uvicorn server hosting the orthodraw API."""
    backend_dir = Path(__file__).resolve().parent / "backend"
    if str(backend_dir) not in sys.path:
        sys.path.append(str(backend_dir))

    # Imported inside main() so sys.path is only modified when running.
    from orthodraw.main import app  # type: ignore

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("ORTHODRAW_PORT", "8000")))


if __name__ == "__main__":
    main()
