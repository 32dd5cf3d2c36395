#!/usr/bin/env python3
"""
Collector Dues Statistics Entry Point

Starts the FastAPI server serving per-collector dues statistics.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dues_collection.api import run_server
from dues_collection.config import get_config


if __name__ == "__main__":
    config = get_config()

    print("📊 Starting Collector Dues Statistics...")
    if config.supabase_url:
        print(f"🔌 Record source: {config.supabase_url}")
    else:
        print("🗃️  Record source: in-memory store (set DUES_SUPABASE_URL to use a service)")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Collector Dues Statistics...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
