#!/usr/bin/env python3
"""Start the field operations facade under uvicorn, honouring HOST and PORT."""

import os
import sys
import subprocess

# Get PORT from environment, default to 8080 (the backend usually owns 8000)
port = os.environ.get("PORT", "8080")

try:
    port_int = int(port)
except ValueError:
    print(f"Warning: Invalid PORT value '{port}', using default 8080", file=sys.stderr)
    port_int = 8080

# The presentation layer runs on the same device
host = os.environ.get("HOST", "127.0.0.1")

# Set PYTHONPATH to include src directory
pythonpath = os.environ.get("PYTHONPATH", "")
src_path = os.path.join(os.getcwd(), "src")
if not os.path.isdir(src_path):
    print(f"Warning: src directory not found at {src_path}; relying on the installed package", file=sys.stderr)
else:
    os.environ["PYTHONPATH"] = f"{src_path}:{pythonpath}" if pythonpath else src_path
    sys.path.insert(0, src_path)

# Single worker: visit and onboarding state lives in the process
cmd = [
    sys.executable,
    "-m",
    "uvicorn",
    "fieldops.main:app",
    "--host",
    host,
    "--port",
    str(port_int),
]

print(f"Starting field operations facade on {host}:{port_int}...", file=sys.stderr)
print(f"PYTHONPATH={os.environ.get('PYTHONPATH', 'NOT SET')}", file=sys.stderr)

# Check the app module imports before handing over to uvicorn
try:
    import fieldops.main  # noqa: F401
    print("✅ Successfully imported fieldops.main", file=sys.stderr)
except Exception as e:
    print(f"❌ Failed to import fieldops.main ({type(e).__name__}): {e}", file=sys.stderr)
    import traceback
    traceback.print_exc(file=sys.stderr)
    sys.exit(1)

try:
    result = subprocess.call(cmd)
    if result != 0:
        print(f"❌ Uvicorn exited with code {result}", file=sys.stderr)
    sys.exit(result)
except KeyboardInterrupt:
    print("⚠️ Server interrupted by user", file=sys.stderr)
    sys.exit(0)
