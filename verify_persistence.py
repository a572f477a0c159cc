"""
Restart smoke test: a position recorded before a server restart must still
be listed afterwards, from whichever backend stored it.

Runs uvicorn on the configured database; uses ADMIN_CODE from the
environment (default "secure123").
"""

import os
import signal
import subprocess
import sys
import time

import httpx

BASE_URL = "http://127.0.0.1:8000"
ADMIN_CODE = os.environ.get("ADMIN_CODE", "secure123")


def start_server() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "tracker.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def stop_server(proc: subprocess.Popen) -> None:
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for _ in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print(f"✅ Server is up: {resp.json()}")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def run_verification():
    print("\n--- [Step 1] Starting Server ---")
    proc = start_server()
    try:
        if not wait_for_server():
            stdout, stderr = proc.communicate(timeout=2)
            print("Server Stdout:", stdout.decode())
            print("Server Stderr:", stderr.decode())
            raise Exception("Server start failed")

        print("\n--- [Step 2] Recording Position ---")
        resp = httpx.post(
            f"{BASE_URL}/api/positions",
            json={"lat": 43.6767, "lng": 4.1351},
            headers={"X-Admin-Code": ADMIN_CODE},
        )
        if resp.status_code != 200:
            print(f"❌ Recording failed: {resp.status_code} {resp.text}")
            raise Exception("Recording failed")
        position_id = resp.json()["id"]
        print(f"✅ Position {position_id} recorded at {resp.json()['created_at']}")
    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # port release

    print("\n--- [Step 4] Restarting Server ---")
    proc = start_server()
    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 5] Listing Positions ---")
        positions = httpx.get(f"{BASE_URL}/api/positions").json()
        if any(p["id"] == position_id for p in positions):
            print(f"✅ Position {position_id} persisted ({len(positions)} positions listed)")
        else:
            print(f"❌ Position {position_id} missing after restart")
            raise Exception("Position lost after restart")

        track = httpx.get(f"{BASE_URL}/api/walking-track", params={"full": "true"}).json()
        print(f"✅ Walking track has {len(track['features'])} features")

        print("\n--- [Step 6] Cleaning Up ---")
        httpx.delete(f"{BASE_URL}/api/positions/{position_id}", headers={"X-Admin-Code": ADMIN_CODE})
    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc)


if __name__ == "__main__":
    run_verification()
