#!/usr/bin/env python3
"""
Simple script to run the STOLEN matching API server from the root directory.
"""

import os
import sys
import subprocess
import argparse

from stolen_ai.common import config


def main():
    parser = argparse.ArgumentParser(description='Run STOLEN Matching API Server')
    parser.add_argument('--port', type=int, default=config.API_PORT, help='Port to run the server on')
    parser.add_argument('--reload', action='store_true', help='Reload on code changes')
    args = parser.parse_args()

    current_dir = os.getcwd()
    if not os.path.exists(os.path.join(current_dir, 'api', 'main.py')):
        print(f"❌ API module not found under: {current_dir}")
        sys.exit(1)

    # Make the project importable for the uvicorn process
    env = os.environ.copy()
    env['PYTHONPATH'] = current_dir + os.pathsep + env.get('PYTHONPATH', '')

    cmd = [sys.executable, '-m', 'uvicorn', 'api.main:app', '--host', '0.0.0.0', '--port', str(args.port)]
    if args.reload:
        cmd.append('--reload')

    print(f"🚀 Starting STOLEN matching API on port {args.port} ({config.STORE_BACKEND} stores)...")
    print(f"🔧 Command: {' '.join(cmd)}")
    print("Press Ctrl+C to stop the server")

    try:
        subprocess.run(cmd, env=env)
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
    except Exception as e:
        print(f"❌ Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
