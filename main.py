from __future__ import annotations

import logging

import uvicorn

# Direct import for standalone execution: `python main.py`
from app import app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000)
