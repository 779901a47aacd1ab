import logging
LOGGER = logging.getLogger(__name__)

from typing import Dict, List, Optional
import asyncio
import httpx
import json
import re

from insightable.analysis.client import AssistantsClient
from insightable.analysis.config import Config
from insightable.analysis.polling import BackoffPolicy
from insightable.analysis.transport import Transport

BASE_URL = "https://api.test/v1"
TERMINAL = {"completed", "failed", "cancelled", "expired", "incomplete"}

ASSISTANT_IDS = {
  "summary": "asst-summary",
  "insights": "asst-insights",
  "chat": "asst-chat",
  "kpi": "asst-kpi",
}


def make_config(**overrides) -> Config:
  values = {"api_key": "sk-test", "base_url": BASE_URL, "assistant_ids": dict(ASSISTANT_IDS)}
  values.update(overrides)
  return Config(**values)


class RecordingSleep:

  def __init__(self):
    self.delays: List[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


class YieldingSleep(RecordingSleep):
  """Records like RecordingSleep but lets other tasks run, as a real wait would."""

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)
    await asyncio.sleep(0)


class FakeAssistantsAPI:
  """
  Scripted stand-in for the Assistants endpoints, served through httpx.MockTransport.
  Like the real service it rejects a message or a run on a thread whose run is still active.
  """

  def __init__(self, file_id: str = "file-abc"):
    self.file_id = file_id
    self.requests: List[httpx.Request] = []
    self.events: List[tuple] = []
    self.threads: Dict[str, List[dict]] = {}
    self.runs: Dict[str, dict] = {}
    self.active_run: Dict[str, str] = {}
    self.run_scripts: Dict[str, List[str]] = {}
    self.replies: Dict[str, str] = {}
    self.failures: Dict[str, str] = {}
    self.overrides: Dict[tuple, object] = {}
    self.clock = 1000

  def _tick(self) -> int:
    self.clock += 1
    return self.clock

  def add_message(self, thread_id: str, role: str, texts: List[str], created_at: Optional[int] = None) -> dict:
    message = {
      "id": f"msg-{len(self.threads.setdefault(thread_id, [])) + 1}-{thread_id}",
      "role": role,
      "created_at": created_at if created_at is not None else self._tick(),
      "content": [{"type": "text", "text": {"value": t, "annotations": []}} for t in texts],
    }
    self.threads[thread_id].append(message)
    return message

  def json_bodies(self, method: str, pattern: str) -> List[dict]:
    return [
      json.loads(r.content) for r in self.requests
      if r.method == method and re.fullmatch(pattern, r.url.path[len("/v1"):])
    ]

  def count(self, method: str, pattern: str) -> int:
    return sum(1 for r in self.requests if r.method == method and re.fullmatch(pattern, r.url.path[len("/v1"):]))

  def handler(self, request: httpx.Request) -> httpx.Response:
    request.read()
    self.requests.append(request)
    path = request.url.path[len("/v1"):]

    for (method, pattern), response in self.overrides.items():
      if method == request.method and re.fullmatch(pattern, path):
        return response(request) if callable(response) else response

    if request.method == "POST" and path == "/files":
      return httpx.Response(200, json={"id": self.file_id, "object": "file", "purpose": "assistants"})

    if request.method == "POST" and path == "/threads":
      thread_id = f"thread-{len(self.threads) + 1}"
      self.threads[thread_id] = []
      return httpx.Response(200, json={"id": thread_id, "object": "thread"})

    match = re.fullmatch(r"/threads/([^/]+)/messages", path)
    if match and request.method == "POST":
      thread_id = match.group(1)
      if thread_id in self.active_run:
        return httpx.Response(400, json={"error": {"message": "Can't add messages while a run is active."}})
      body = json.loads(request.content)
      content = []
      for item in body["content"]:
        if item["type"] == "text":
          content.append({"type": "text", "text": {"value": item["text"], "annotations": []}})
        else:
          content.append(item)
      message = {"id": f"msg-{self._tick()}", "role": body["role"], "created_at": self.clock, "content": content}
      self.threads.setdefault(thread_id, []).append(message)
      return httpx.Response(200, json=message)

    if match and request.method == "GET":
      data = sorted(self.threads.get(match.group(1), []), key=lambda m: m["created_at"], reverse=True)
      return httpx.Response(200, json={"object": "list", "data": data})

    match = re.fullmatch(r"/threads/([^/]+)/runs", path)
    if match and request.method == "POST":
      thread_id = match.group(1)
      if thread_id in self.active_run:
        return httpx.Response(400, json={"error": {"message": f"Thread {thread_id} already has an active run"}})
      body = json.loads(request.content)
      run_id = f"run-{len(self.runs) + 1}"
      self.runs[run_id] = {
        "thread_id": thread_id,
        "assistant_id": body["assistant_id"],
        "statuses": list(self.run_scripts.get(body["assistant_id"], ["completed"])),
        "status": "queued",
      }
      self.active_run[thread_id] = run_id
      self.events.append(("created", run_id))
      return httpx.Response(200, json={"id": run_id, "status": "queued", "thread_id": thread_id})

    match = re.fullmatch(r"/threads/([^/]+)/runs/([^/]+)", path)
    if match and request.method == "GET":
      run_id = match.group(2)
      run = self.runs[run_id]
      if run["statuses"]:
        run["status"] = run["statuses"].pop(0)
      status = run["status"]
      last_error = None
      if status in TERMINAL and self.active_run.get(run["thread_id"]) == run_id:
        del self.active_run[run["thread_id"]]
        self.events.append(("terminal", run_id))
        if status == "completed":
          reply = self.replies.get(run["assistant_id"], f"Reply from {run['assistant_id']}")
          self.add_message(run["thread_id"], "assistant", [reply])
      if status == "failed":
        last_error = {"code": "server_error", "message": self.failures.get(run["assistant_id"], "failed")}
      return httpx.Response(200, json={"id": run_id, "status": status, "thread_id": run["thread_id"],
                                       "last_error": last_error})

    return httpx.Response(404, json={"error": {"message": f"No route for {request.method} {path}"}})


def make_client(api: FakeAssistantsAPI, config: Optional[Config] = None,
                policy: Optional[BackoffPolicy] = None, sleep: Optional[RecordingSleep] = None):
  config = config or make_config()
  http_client = httpx.AsyncClient(transport=httpx.MockTransport(api.handler))
  sleep = sleep or RecordingSleep()
  client = AssistantsClient(config, transport=Transport(config, http_client=http_client),
                            policy=policy or BackoffPolicy(), sleep=sleep)
  return client, sleep
