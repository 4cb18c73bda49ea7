#!/usr/bin/env python3
import logging
import os

import uvicorn

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "").strip().lower() in {"1", "true", "yes"}
    logging.getLogger(__name__).info("Starting Técnicos en RD API on port %s", port)
    uvicorn.run(
        "tecnicos.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
        reload=reload,
        reload_dirs=["tecnicos"] if reload else None,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
