"""
Server entry point.

Usage:
    python -m finance_api
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "finance_api.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
    )
