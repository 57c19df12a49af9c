#!/usr/bin/env python3
"""
Smoke check for a running face access-control deployment.

Only exercises endpoints that do not mutate the registry, plus one
verification call with an empty image that must come back as a 400.
"""

import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


async def check_endpoint(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    data: Optional[Dict[str, Any]] = None,
    expected_status: int = 200
) -> Dict[str, Any]:
    """Call a single endpoint and compare its status code."""
    try:
        if method == "GET":
            response = await client.get(url)
        elif method == "POST":
            response = await client.post(url, json=data)
        else:
            raise ValueError(f"Unsupported method: {method}")

        return {
            "url": url,
            "method": method,
            "status_code": response.status_code,
            "success": response.status_code == expected_status,
            "response": response.json() if response.headers.get("content-type", "").startswith("application/json") else response.text,
            "error": None
        }
    except Exception as e:
        return {
            "url": url,
            "method": method,
            "status_code": None,
            "success": False,
            "response": None,
            "error": str(e)
        }


async def check_deployment(base_url: str) -> bool:
    """Run the smoke checks against a deployed service."""
    print(f"Checking deployment at: {base_url}")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        checks = [
            {"name": "Health Check", "url": f"{base_url}/health", "method": "GET"},
            {"name": "Metrics", "url": f"{base_url}/metrics", "method": "GET"},
            {"name": "Trigger Poll", "url": f"{base_url}/api/trigger-capture", "method": "GET"},
            {"name": "User Listing", "url": f"{base_url}/api/users", "method": "GET"},
            {
                "name": "Recognize Rejects Missing Image",
                "url": f"{base_url}/api/recognize",
                "method": "POST",
                "data": {},
                "expected_status": 400
            },
        ]

        results = []
        for check in checks:
            print(f"Checking: {check['name']}")
            result = await check_endpoint(
                client,
                check["url"],
                check["method"],
                check.get("data"),
                check.get("expected_status", 200)
            )
            results.append({**check, **result})

            if result["success"]:
                print(f"  OK - Status: {result['status_code']}")
            else:
                print(f"  FAILED - Status: {result.get('status_code', 'N/A')}, Error: {result['error']}")

            print()

        health = results[0].get("response") or {}
        if isinstance(health, dict) and health.get("modelsLoaded"):
            missing = [name for name, loaded in health["modelsLoaded"].items() if not loaded]
            if missing:
                print(f"Models not loaded: {', '.join(missing)}")
                results[0]["success"] = False

        print("=" * 60)
        passed = sum(1 for r in results if r["success"])
        total = len(results)
        print(f"Checks Passed: {passed}/{total}")

        if passed == total:
            print("Deployment is working correctly.")
            return True

        for check in results:
            if not check["success"]:
                print(f"  - {check['name']}: {check['error'] or 'HTTP ' + str(check['status_code'])}")
        return False


async def main():
    if len(sys.argv) != 2:
        print("Usage: python smoke_check.py <base_url>")
        print("Example: python smoke_check.py http://raspberrypi.local:3001")
        sys.exit(1)

    success = await check_deployment(sys.argv[1].rstrip('/'))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    asyncio.run(main())
