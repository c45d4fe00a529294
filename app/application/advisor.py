"""
Advisor bridge - asks a local or hosted LLM for proposals, never for writes.

The model only returns JSON proposals (bill templates, nudge texts, action
proposals); anything that changes bookkeeping goes back through the action
channel after the user confirms it. Every failure here degrades to
{"ok": False, "error": ...} and leaves the database untouched.
"""
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable

import requests
from tenacity import (
    Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_incrementing,
)

from app.config import Settings
from app.domain.ledger import InstanceView, MonthSummary, STATUS_SKIPPED
from app.utils.money import format_money

logger = logging.getLogger(__name__)

PROVIDER_OLLAMA = "ollama"
PROVIDER_OPENAI = "openai"
PROVIDER_DISABLED = "disabled"

SYSTEM_PROMPT = """You are the Au Jour Le Jour Advisory Assistant running locally.
You must output ONLY valid JSON that matches the required schema for the task.
You do not compute financial totals, due date clamping, or business logic; the app does that deterministically.
You never write to the database. You only propose templates, messages, or actions for the user to confirm.
If ambiguous, ask a clarifying question in the "questions" or "clarifying_question" field.
Prefer short, direct phrasing. No moralizing. No shaming.
Never include any content outside of JSON."""

SYSTEM_PROMPT_AGENT = """You are the Finance Agent for Au Jour Le Jour.
Return ONLY valid JSON. No extra text.
Do not compute totals or business logic; use provided context.
Never write to the database; only propose actions.
If ambiguous, ask a clarifying question."""

TASK_PROMPTS = {
    "intake": """TASK: Extract recurring bill templates from user_text. Return TemplateCandidate JSON.
Rules:
- Only include items that look like recurring monthly obligations or monthly targets.
- If due day is not stated, set due_day_guess = null and ask a question only if necessary.
- Guess category from common sense (Utilities, Insurance, Auto, Debt, Food, Subscriptions, Health, Buffer, Other).
- essential_guess: true for utilities/insurance/debt/food/transport; false for entertainment unless user says otherwise.
- autopay_guess: true only if user implies autopay.
- match_payee_key_guess: normalized short token if obvious.
- confidence: 0..1; if <0.6, add to warnings.
Output JSON object:
{"templates": [ ... ], "questions": [ ... ], "warnings": [ ... ]}""",
    "nudges": """TASK: Convert trigger_events into short, helpful messages. Output NudgeMessage JSON.
Rules:
- 1 message per trigger_event (max 4 messages total; pick most urgent).
- Title <= 45 chars.
- Body <= 160 chars unless urgent (<= 220).
- No shame. Direct, calm.
- Always include a CTA if it points to a UI area.
Mapping:
- OVERDUE -> CTA OPEN_OVERDUE
- DUE_SOON -> CTA OPEN_DUE_SOON
- FREE_FOR_MONTH -> CTA OPEN_SPEND_GUARD
- NEW_MONTH_START -> CTA OPEN_TEMPLATES
Output JSON object:
{"messages": [ ... ]}""",
    "habit": """TASK: Create a short habit summary and 2-4 suggested rules. Output HabitSummary JSON.
Rules:
- Be factual; don't invent.
- No judgment.
- suggested_rules should be actionable in-app.
Output JSON object:
{"summary": {"high_level": [], "patterns": [], "suggested_rules": []}}""",
    "command": """TASK: Parse a user command into safe action proposals. Output ActionProposal JSON.
Rules:
- If ambiguous target, ask clarifying_question and set low confidence.
- needs_confirmation true for any write intent.
Output JSON object:
{"proposals": [ ... ], "errors": [ ... ]}""",
    "assist": """TASK: Respond to the user_text with a short helpful answer. If context is provided, use it. Output JSON object:
{"text": "..."}
Rules:
- Keep it under 120 words.
- No markdown.
- If the user asks about the app, explain plainly.""",
    "agent": """TASK: Decide whether user_text is (A) bill intake, (B) a command, or (C) a general question.
Output JSON object:
{"kind": "intake|command|ask", "answer": "string|null", "proposal": { ... } | null,
 "templates": [ ... ] | null, "questions": [ ... ], "warnings": [ ... ]}
Rules:
- If user_text lists bills or amounts, use kind="intake" and output templates in TemplateCandidate schema.
- If user_text asks to pay/skip/mark/update bills, use kind="command" and output a single ActionProposal object.
- If user_text is a question, use kind="ask" and put the response in "answer".
- If ambiguous, ask a clarifying question in "questions" (intake) or "proposal.clarifying_question" (command).
- For explicit commands ("mark tesla paid"), you may set proposal.needs_confirmation = false.""",
}

TASKS = frozenset(TASK_PROMPTS)

_AUTH_URL_RE = re.compile(r"https?://\S*authorize\?user_code=\S+", re.IGNORECASE)


class AdvisorTaskError(ValueError):
    """Unknown advisor task"""
    pass


def build_prompt(task: str, payload: dict | None) -> str:
    if task not in TASK_PROMPTS:
        raise AdvisorTaskError("Unknown advisor task")
    body = json.dumps(payload or {}, indent=2, ensure_ascii=False, default=str)
    return f"{TASK_PROMPTS[task]}\nINPUT:\n{body}"


def extract_auth_url(text: str | None) -> str | None:
    if not text:
        return None
    match = _AUTH_URL_RE.search(text)
    return match.group(0) if match else None


def extract_json(text: str) -> Any:
    """
    Parse model output that should be JSON; tolerates chatter around one object.

    Raises:
        ValueError: nothing parseable
    """
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        first = text.find("{") if isinstance(text, str) else -1
        last = text.rfind("}") if isinstance(text, str) else -1
        if first == -1 or last <= first:
            raise ValueError("No JSON object in response")
        return json.loads(text[first:last + 1])


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with linear backoff (backoff * attempt)"""
    max_retries: int = 1
    backoff_seconds: float = 0.2

    def retrying(self, sleep: Callable[[float], None] = time.sleep) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(max(0, self.max_retries) + 1),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception_type(requests.RequestException),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )

    def run(self, fn: Callable[[int], Any], sleep: Callable[[float], None] = time.sleep):
        """Call fn(attempt_index) until it stops raising a transport error"""
        for attempt in self.retrying(sleep):
            with attempt:
                return fn(attempt.retry_state.attempt_number - 1)


class AdvisorClient:
    """
    Usage:
        >>> client = AdvisorClient(get_settings())
        >>> client.query("intake", {"user_text": "rent 1200 on the 1st"})
        {"ok": True, "data": {"templates": [...], "questions": [], "warnings": []}}
    """

    def __init__(self, settings: Settings, retry: RetryPolicy | None = None):
        self.provider = (settings.LLM_PROVIDER or PROVIDER_DISABLED).lower()
        self.model = settings.LLM_MODEL
        self.base_url = settings.LLM_BASE_URL.rstrip("/")
        self.api_key = settings.LLM_API_KEY
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.temperature = settings.LLM_TEMPERATURE
        self.retry = retry or RetryPolicy(
            max_retries=settings.LLM_MAX_RETRIES,
            backoff_seconds=settings.LLM_BACKOFF_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return self.provider in (PROVIDER_OLLAMA, PROVIDER_OPENAI)

    def query(self, task: str, payload: dict | None) -> dict:
        prompt = build_prompt(task, payload)
        system_prompt = SYSTEM_PROMPT_AGENT if task == "agent" else SYSTEM_PROMPT

        if self.provider == PROVIDER_DISABLED:
            return {"ok": False, "error": "LLM disabled"}
        if self.provider == PROVIDER_OLLAMA:
            response = self._call_ollama(prompt, system_prompt)
        elif self.provider == PROVIDER_OPENAI:
            response = self._call_openai(prompt, system_prompt)
        else:
            return {"ok": False, "error": f"Unknown LLM provider: {self.provider}"}

        if not response["ok"]:
            return response

        content = response["content"]
        try:
            return {"ok": True, "data": extract_json(content)}
        except ValueError:
            auth_url = extract_auth_url(content)
            if auth_url:
                return {"ok": False, "error": "Agent login required", "auth_url": auth_url}
            logger.warning("Advisor %s: model returned invalid JSON", task)
            return {"ok": False, "error": "Invalid JSON from LLM"}

    def _post(self, url: str, body: dict, headers: dict | None = None) -> requests.Response:
        return self.retry.run(lambda attempt: requests.post(
            url,
            json=body,
            headers=headers or {},
            timeout=self.timeout,
        ))

    def _call_ollama(self, prompt: str, system_prompt: str) -> dict:
        try:
            resp = self._post(f"{self.base_url}/api/chat", {
                "model": self.model,
                "stream": False,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                "options": {"num_predict": self.max_tokens, "temperature": self.temperature},
            })
        except requests.RequestException as e:
            logger.exception("Ollama request failed")
            return {"ok": False, "error": f"LLM request failed: {e}"}

        if not resp.ok:
            return {"ok": False, "error": f"LLM request failed: {resp.text}"}
        try:
            data = resp.json()
        except ValueError:
            data = {}
        message = data.get("message") if isinstance(data, dict) else None
        content = (message.get("content") if isinstance(message, dict) else None) or ""
        return {"ok": True, "content": content}

    def _call_openai(self, prompt: str, system_prompt: str) -> dict:
        """OpenAI-compatible /chat/completions (hosted providers, llama.cpp, vLLM, ...)"""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            resp = self._post(f"{self.base_url}/chat/completions", {
                "model": self.model,
                "stream": False,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            }, headers)
        except requests.RequestException as e:
            logger.exception("LLM request failed")
            return {"ok": False, "error": f"LLM request failed: {e}"}

        if resp.status_code == 401:
            return {"ok": False, "error": "Agent login expired. Reconnect."}
        if not resp.ok:
            return {"ok": False, "error": f"LLM request failed: {resp.text}"}
        try:
            data = resp.json()
        except ValueError:
            data = {}
        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        content = (message.get("content") if isinstance(message, dict) else None) or ""
        return {"ok": True, "content": content}


# === Nudges ===

TRIGGER_CTA = {
    "OVERDUE": "OPEN_OVERDUE",
    "DUE_SOON": "OPEN_DUE_SOON",
    "FREE_FOR_MONTH": "OPEN_SPEND_GUARD",
    "NEW_MONTH_START": "OPEN_TEMPLATES",
}
TRIGGER_PRIORITY = ("OVERDUE", "DUE_SOON", "NEW_MONTH_START", "FREE_FOR_MONTH")
DUE_SOON_DAYS = 7
NEW_MONTH_DAYS = 3
MAX_NUDGES = 4


def build_trigger_events(
    instances: Iterable[InstanceView],
    summary: MonthSummary,
    year: int,
    month: int,
    today: date,
) -> list[dict]:
    """Deterministic triggers for the viewed month, most urgent first"""
    if (today.year, today.month) != (year, month):
        return []

    open_items = [
        i for i in instances
        if i.status_derived != STATUS_SKIPPED and i.amount_remaining > 0
    ]
    overdue = [i for i in open_items if i.due_date < today]
    due_soon = [i for i in open_items if 0 <= (i.due_date - today).days <= DUE_SOON_DAYS]

    events = []
    if overdue:
        events.append({
            "type": "OVERDUE",
            "count": len(overdue),
            "amount": float(sum(i.amount_remaining for i in overdue)),
            "items": [i.name_snapshot for i in overdue],
        })
    if due_soon:
        events.append({
            "type": "DUE_SOON",
            "count": len(due_soon),
            "amount": float(sum(i.amount_remaining for i in due_soon)),
            "items": [i.name_snapshot for i in due_soon],
            "days": DUE_SOON_DAYS,
        })
    if today.day <= NEW_MONTH_DAYS:
        events.append({"type": "NEW_MONTH_START", "required": float(summary.required_month)})
    if summary.free_for_month:
        events.append({"type": "FREE_FOR_MONTH", "required": float(summary.required_month)})

    events.sort(key=lambda e: TRIGGER_PRIORITY.index(e["type"]))
    return events[:MAX_NUDGES]


def fallback_nudges(events: Iterable[dict]) -> list[dict]:
    """Plain template messages used when the advisor is off or fails"""
    messages = []
    for event in events:
        kind = event["type"]
        if kind == "OVERDUE":
            title = "Overdue bills"
            body = f"{event['count']} bill(s) past due, {format_money(event['amount'])} left to pay."
        elif kind == "DUE_SOON":
            title = "Coming up this week"
            body = f"{event['count']} bill(s) due in the next {event['days']} days, {format_money(event['amount'])} total."
        elif kind == "NEW_MONTH_START":
            title = "New month"
            body = f"This month needs {format_money(event['required'])}. Check your templates are up to date."
        elif kind == "FREE_FOR_MONTH":
            title = "All covered"
            body = "Every bill this month is paid. Anything left is free to use."
        else:
            continue
        messages.append({"trigger": kind, "title": title, "body": body, "cta": TRIGGER_CTA[kind]})
    return messages[:MAX_NUDGES]


class NudgeService:
    def __init__(self, client: AdvisorClient):
        self.client = client

    def generate(self, events: list[dict]) -> dict:
        """
        Returns:
            {"ok": True, "source": "advisor" | "fallback", "messages": [...]}
        """
        if not events:
            return {"ok": True, "source": "fallback", "messages": []}

        if self.client.enabled:
            result = self.client.query("nudges", {"trigger_events": events})
            data = result.get("data") if result.get("ok") else None
            messages = data.get("messages") if isinstance(data, dict) else None
            messages = [m for m in messages if isinstance(m, dict)] if isinstance(messages, list) else []
            if messages:
                return {"ok": True, "source": "advisor", "messages": messages[:MAX_NUDGES]}
            logger.info("Nudges: advisor unavailable (%s), using fallback", result.get("error"))

        return {"ok": True, "source": "fallback", "messages": fallback_nudges(events)}
