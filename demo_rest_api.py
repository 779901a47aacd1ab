#!/usr/bin/env python3
"""
Simple demo script for the Insightable REST API.

This script demonstrates:
1. Summarizing a file (summary and key insights on one thread)
2. Opening a follow-up chat on that thread
3. Asking a question about the analysis
4. Listing and deleting saved conversations

Prerequisites:
- REST API server running (e.g., uvicorn insightable.rest.main:app --reload)
- OPENAI_API_KEY, SUMMARY_ASSISTANT_ID, INSIGHT_ASSISTANT_ID and CHAT_ASSISTANT_ID
  set in the server's environment or .env file

Usage:
    python demo_rest_api.py path/to/kpi.csv
"""

import mimetypes
import os
import sys
from typing import Optional

import requests


class InsightableAPIClient:
    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 600):
        self.base_url = base_url.rstrip('/')
        # runs are polled server side, a request can take minutes
        self.timeout = timeout

    def summarize(self, path: str) -> dict:
        """Upload a file and get its summary and key insights."""
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        with open(path, "rb") as f:
            files = {"file": (os.path.basename(path), f, content_type)}
            response = requests.post(f"{self.base_url}/summary", files=files, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def open_chat(self, thread_id: str, opening_text: Optional[str] = None, file_id: Optional[str] = None) -> dict:
        """Resume or start the chat transcript of a thread."""
        payload = {"thread_id": thread_id, "opening_text": opening_text, "file_id": file_id}
        response = requests.post(f"{self.base_url}/chat/open", json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def chat(self, thread_id: str, prompt: str, file_id: Optional[str] = None) -> dict:
        """Send a chat message and wait for the reply."""
        payload = {"thread_id": thread_id, "prompt": prompt, "file_id": file_id}
        response = requests.post(f"{self.base_url}/chat", json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_conversations(self) -> list:
        """Get the saved conversations, newest first."""
        response = requests.get(f"{self.base_url}/conversations", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def delete_conversation(self, thread_id: str) -> bool:
        """Delete the saved transcript of a thread."""
        response = requests.delete(f"{self.base_url}/conversations/{thread_id}", timeout=self.timeout)
        return response.status_code == 200


def _show(label: str, outcome: dict):
    if outcome.get("error"):
        print(f"   ⚠️ {label}: {outcome['error']}")
    else:
        print(f"   ✅ {label}:\n{outcome['text']}\n")


def main():
    """Main demo function."""
    print("📊 Insightable REST API Demo")
    print("=" * 40)

    if len(sys.argv) < 2:
        print("Usage: python demo_rest_api.py path/to/file.csv")
        return
    path = sys.argv[1]

    client = InsightableAPIClient(os.getenv("INSIGHTABLE_API_URL", "http://localhost:8000"))

    try:
        # Step 1: Summary and insights
        print(f"\n1️⃣ Summarizing {path}...")
        report = client.summarize(path)
        _show("Summary", report["summary"])
        _show("Key insights", report["insights"])

        thread_id = report.get("thread_id")
        if not thread_id:
            print("❌ No thread was created, nothing to chat about.")
            return

        # Step 2: Open the chat
        print("\n2️⃣ Opening a chat on the analysis thread...")
        opened = client.open_chat(thread_id, opening_text=report["summary"].get("text"),
                                  file_id=report.get("file_id"))
        print(f"   🤖 Assistant: {opened['messages'][0]['content']}")

        # Step 3: Ask a question
        print("\n3️⃣ Asking a follow-up question...")
        prompt = "Which KPI needs the most attention next month?"
        print(f"   👤 User: {prompt}")
        answer = client.chat(thread_id, prompt, file_id=report.get("file_id"))
        _show("Assistant", answer["reply"])

        # Step 4: Conversations
        print("\n4️⃣ Saved conversations:")
        for conversation in client.get_conversations():
            print(f"   • {conversation['thread_id']} ({conversation['message_count']} messages): "
                  f"{conversation['preview'][:60]}")

        if client.delete_conversation(thread_id):
            print(f"   ✅ Deleted conversation: {thread_id}")
        else:
            print(f"   ⚠️ Could not delete conversation: {thread_id}")

        print("\n🎉 Demo completed successfully!")

    except requests.exceptions.ConnectionError:
        print("❌ Error: Could not connect to the REST API server.")
        print("   Make sure the server is running on http://localhost:8000")
        print("   Start with: uvicorn insightable.rest.main:app --reload")

    except requests.exceptions.HTTPError as e:
        print(f"❌ HTTP Error: {e}")
        if e.response.status_code == 503:
            print("   An assistant id is not configured on the server.")
        else:
            try:
                print(f"   Details: {e.response.json()}")
            except ValueError:
                print(f"   Response: {e.response.text}")

    except OSError as e:
        print(f"❌ Could not read {path}: {e}")


if __name__ == "__main__":
    main()
