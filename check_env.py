#!/usr/bin/env python3
"""Helper script to check and create the .env file for the field operations engine."""

from pathlib import Path
import sys

ENV_TEMPLATE = """# Field-sales backend (trailing slash is added when missing)
FIELDOPS_API_BASE_URL=http://localhost:8000/api/
# FIELDOPS_AUTH_SCHEME=token

# Reverse geocoding: google, nominatim or none
FIELDOPS_GEOCODE_PROVIDER=google
FIELDOPS_GOOGLE_API_KEY=

# Device location
# FIELDOPS_LOCATION_PERMISSION=undetermined
# FIELDOPS_DEVICE_LATITUDE=
# FIELDOPS_DEVICE_LONGITUDE=
# FIELDOPS_STRICT_LOCATION_ON_STARTUP=false

# Local state
# FIELDOPS_STORE_FILE=~/.fieldops/state.json
# FIELDOPS_CREDENTIALS_FILE=~/.fieldops/credentials.json
"""


def _mask(value: str) -> str:
    return value[:6] + "..." + value[-4:] if len(value) > 12 else "***"


def main() -> int:
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("Field Operations Environment Checker")
    print("=" * 60)
    print()

    if not env_file.exists():
        print(f"❌ .env file NOT found at: {env_file}")
        env_file.write_text(ENV_TEMPLATE, encoding="utf-8")
        print(f"✅ Created template .env file at: {env_file}")
        print("⚠️  Edit it to point at your backend, then run this script again.")
        return 1

    print(f"✅ Found .env file at: {env_file}")
    print()

    sys.path.insert(0, str(project_root / "src"))
    try:
        from fieldops.config import Settings

        settings = Settings()
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        print("Make sure variables start with the FIELDOPS_ prefix and values are valid.")
        return 1

    print(f"Backend URL:        {settings.api_base_url}")
    print(f"Geocode provider:   {settings.geocode_provider}")
    if settings.geocode_provider == "google":
        if settings.google_api_key:
            print(f"✅ Google API key:  {_mask(settings.google_api_key)}")
        else:
            print("⚠️  No Google API key: fixes will carry no address")
    print(f"Location permission: {settings.location_permission}")
    print(f"State file:         {settings.store_file}")
    print(f"Credentials file:   {settings.credentials_file}")
    print()
    print("=" * 60)
    print("✅ Configuration loaded")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
