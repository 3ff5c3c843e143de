#!/usr/bin/env python
"""
SheetCheck - Application Entry Point

Usage:
    python run.py [--host HOST] [--port PORT] [--reload]

Examples:
    python run.py                    # Start with settings from .env
    python run.py --reload           # Start with auto-reload
    python run.py --port 8080        # Start on custom port
"""
import argparse
import uvicorn

from sheetcheck.config import settings


def main():
    parser = argparse.ArgumentParser(
        description="SheetCheck API Server"
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help=f"Host to bind (default: {settings.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Port to bind (default: {settings.PORT})"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )

    args = parser.parse_args()

    print(f"""
    SheetCheck API Server
    Host:     {args.host}
    Port:     {args.port}
    Reload:   {'Enabled' if args.reload else 'Disabled'}
    Storage:  {'Supabase' if settings.SUPABASE_URL else 'in-memory'}
    Scorer:   {settings.SCORER_URL or settings.LLM_PROVIDER}
    API Docs: http://{args.host}:{args.port}/docs
    """)

    uvicorn.run(
        "sheetcheck.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info"
    )


if __name__ == "__main__":
    main()
