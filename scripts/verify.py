import httpx
import asyncio
import os
import sys

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000")

async def run_verification() -> bool:
    print(f"🚀  Starting Verification against {BASE_URL}...\n")
    ok = True

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
            if resp.status_code == 200 and resp.json() == {"status": "ok"}:
                print("   ✅  Health Check Passed")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return False
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return False

        # 2. Create Link
        print("\n2. [API] Creating Short Link...")
        target_url = "https://www.example.com/page"
        code = "verify01"

        # Cleanup first if exists
        await client.delete(f"/api/links/{code}")

        resp = await client.post("/api/links", json={"targetUrl": target_url, "code": code})
        if resp.status_code == 201:
            print(f"   ✅  Created: {resp.json()['shortUrl']}")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return False

        # 3. Conflict
        print("\n3. [API] Verifying duplicate code is rejected...")
        resp = await client.post("/api/links", json={"targetUrl": target_url, "code": code})
        if resp.status_code == 409:
            print("   ✅  Duplicate rejected with 409")
        else:
            print(f"   ❌  Expected 409, got {resp.status_code}")
            ok = False

        # 4. Verify Redirect
        print("\n4. [API] Verifying Redirect...")
        resp = await client.get(f"/{code}", follow_redirects=False)
        if resp.status_code == 302 and resp.headers.get("location") == target_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")
            ok = False

        # 5. Verify click accounting (asynchronous, give it a moment)
        print("\n5. [API] Verifying Click Count...")
        clicks = 0
        for _ in range(10):
            resp = await client.get(f"/api/links/{code}")
            clicks = resp.json().get("totalClicks", 0) if resp.status_code == 200 else 0
            if clicks > 0:
                break
            await asyncio.sleep(0.2)
        if clicks > 0:
            print(f"   ✅  Click Count updated: {clicks}")
        else:
            print("   ⚠️  Click Count not updated yet (best-effort accounting)")

        # 6. Delete and reuse
        print("\n6. [API] Verifying delete frees the code...")
        await client.delete(f"/api/links/{code}")
        resp = await client.post("/api/links", json={"targetUrl": "https://www.example.org", "code": code})
        if resp.status_code == 201:
            print("   ✅  Code reused after delete")
        else:
            print(f"   ❌  Recreate Failed: {resp.status_code} {resp.text}")
            ok = False
        await client.delete(f"/api/links/{code}")

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "redirect_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            print(f"   ❌  Metrics Failed: {resp.status_code}")
            ok = False

    print("\n✨ Verification Complete!" if ok else "\n💥 Verification Failed")
    return ok

if __name__ == "__main__":
    sys.exit(0 if asyncio.run(run_verification()) else 1)
