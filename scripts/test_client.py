"""
Test Client for EMI Reminder API.
Simple script to exercise the running server end to end.
"""

import asyncio
from datetime import date, timedelta

import httpx


BASE_URL = "http://localhost:8000"

SAMPLE_CLIENT = {
    "name": "Asha",
    "mobile": "9876543210",
    "totalDue": 15000,
    "emiAmount": 2500,
    "dueDate": (date.today() + timedelta(days=5)).isoformat()
}


async def check_health():
    """Hit the health endpoints."""
    print("\n🏥 Testing Health Endpoints...")

    async with httpx.AsyncClient() as client:
        for path in ("/health", "/health/ready", "/health/live"):
            response = await client.get(f"{BASE_URL}{path}")
            print(f"   {path}: {response.status_code}")
            print(f"   {response.json()}")


async def create_client() -> str:
    """Store the sample client and return its id."""
    print("\n👤 Creating client...")

    async with httpx.AsyncClient() as client:
        response = await client.post(f"{BASE_URL}/api/clients", json=SAMPLE_CLIENT)
        data = response.json()
        print(f"   {response.status_code}: {data.get('message')}")
        return data["client"]["id"]


async def run_conversation(client_id: str):
    """Walk through a short reminder conversation."""
    print("\n💬 Testing Chat Endpoint...")

    messages = [
        "When is my EMI due?",
        "What is my total outstanding balance?",
        "I lost my job and cannot pay this month",
        "Can I get an extension?",
        "Okay, thank you",
    ]

    session_id = None

    async with httpx.AsyncClient(timeout=30.0) as client:
        for text in messages:
            payload = {"message": text, "clientId": client_id}
            if session_id:
                payload["sessionId"] = session_id

            print(f"\n   📤 Client: {text}")

            response = await client.post(f"{BASE_URL}/api/chat", json=payload)

            if response.status_code == 200:
                data = response.json()
                session_id = data.get("sessionId")
                print(f"   🤖 Agent [{data['source']}/{data['sentiment']}]: {data['response']}")
                print(f"   ⏱️  Latency: {data['latencyMs']}ms")
            else:
                print(f"   ❌ Error: {response.status_code}")
                print(f"   {response.text}")

        if session_id:
            # Archive writes are fire-and-forget
            await asyncio.sleep(0.2)
            response = await client.get(f"{BASE_URL}/api/conversations/{session_id}")
            print(f"\n   📜 Archived turns: {response.json().get('count')}")


async def check_empty_voice_transcript():
    """An empty transcript is rejected."""
    print("\n🎤 Testing empty voice transcript...")

    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{BASE_URL}/api/chat/voice",
            json={"transcript": "   ", "clientData": SAMPLE_CLIENT}
        )
        print(f"   {response.status_code}: {response.json()}")


async def main():
    """Run all checks."""
    print("=" * 60)
    print("🧪 EMI Reminder API Test Client")
    print("=" * 60)
    print(f"Target: {BASE_URL}")

    try:
        await check_health()
        client_id = await create_client()
        await run_conversation(client_id)
        await check_empty_voice_transcript()

        print("\n" + "=" * 60)
        print("✅ All checks completed!")
        print("=" * 60)

    except httpx.ConnectError:
        print("\n❌ Cannot connect to server. Make sure it's running:")
        print("   uvicorn emi_reminder.main:app --reload")
    except Exception as e:
        print(f"\n❌ Error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
