"""LLM wrapper — Claude, OpenAI, Azure OpenAI, Ollama or mock, switchable via env var."""

import asyncio
import functools
import logging
import os
import re

log = logging.getLogger("llm")

# Provider config from env
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "").lower()
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
AZURE_OPENAI_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT", "")
AZURE_OPENAI_API_KEY = os.getenv("AZURE_OPENAI_API_KEY", "")
AZURE_OPENAI_DEPLOYMENT_NAME = os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME", "")
AZURE_OPENAI_API_VERSION = os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:3b")
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "4096"))

PROVIDERS = ("claude", "openai", "azure", "ollama", "mock")

DEFAULT_SYSTEM_PROMPT = (
    "You rewrite documents for readers with dyslexia and other learning "
    "differences. Use short sentences and common words. Keep every fact, "
    "name and number. Keep the paragraph structure. Reply with the "
    "rewritten text only."
)

SYSTEM_PROMPT = os.getenv("READABLE_SYSTEM_PROMPT", "") or DEFAULT_SYSTEM_PROMPT

USER_PROMPT_TEMPLATE = "Please simplify the following text to make it more accessible:\n\n{text}"

# Plain-word substitutions for the mock provider; longer forms first
_MOCK_REPLACEMENTS = [
    ("utilization", "use"),
    ("utilize", "use"),
    ("methodologies", "methods"),
    ("methodology", "method"),
    ("facilitates", "helps"),
    ("facilitate", "help"),
    ("demonstrates", "shows"),
    ("demonstrate", "show"),
    ("approximately", "about"),
    ("subsequently", "then"),
    ("furthermore", "also"),
    ("moreover", "also"),
    ("multifaceted", "many-sided"),
    ("heterogeneous", "different"),
    ("synthesizing", "combining"),
    ("cohorts", "groups"),
    ("leverages", "uses"),
    ("enhance", "improve"),
    ("comprehension", "understanding"),
]
_MOCK_RE = [(re.compile(re.escape(word), re.IGNORECASE), plain) for word, plain in _MOCK_REPLACEMENTS]

# Lazy-loaded clients
_anthropic_client = None
_openai_client = None
_azure_client = None
_httpx_client = None


def _azure_configured() -> bool:
    return bool(AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY and AZURE_OPENAI_DEPLOYMENT_NAME)


def _resolve_provider() -> str:
    """Pick the simplification backend: explicit LLM_PROVIDER, else the first configured key."""
    if LLM_PROVIDER in PROVIDERS:
        return LLM_PROVIDER
    # Auto-detect: Claude > Azure OpenAI > OpenAI > mock
    if ANTHROPIC_API_KEY:
        return "claude"
    if _azure_configured():
        return "azure"
    if OPENAI_API_KEY:
        return "openai"
    return "mock"


def _get_anthropic():
    global _anthropic_client
    if _anthropic_client is None:
        import anthropic
        _anthropic_client = anthropic.Anthropic(api_key=ANTHROPIC_API_KEY)
        log.info("Anthropic client ready (model=%s)", ANTHROPIC_MODEL)
    return _anthropic_client


def _get_openai():
    global _openai_client
    if _openai_client is None:
        from openai import OpenAI
        _openai_client = OpenAI(api_key=OPENAI_API_KEY)
        log.info("OpenAI client ready (model=%s)", OPENAI_MODEL)
    return _openai_client


def _get_azure():
    global _azure_client
    if _azure_client is None:
        from openai import AzureOpenAI
        _azure_client = AzureOpenAI(
            azure_endpoint=AZURE_OPENAI_ENDPOINT,
            api_key=AZURE_OPENAI_API_KEY,
            api_version=AZURE_OPENAI_API_VERSION,
        )
        log.info("Azure OpenAI client initialized (deployment=%s)", AZURE_OPENAI_DEPLOYMENT_NAME)
    return _azure_client


def _get_httpx():
    global _httpx_client
    if _httpx_client is None:
        import httpx
        _httpx_client = httpx.Client(timeout=120.0)
        log.info("Ollama simplifier at %s (model=%s)", OLLAMA_URL, OLLAMA_MODEL)
    return _httpx_client


# ── Generation ────────────────────────────────────────────────

def _generate_claude(system: str, prompt: str) -> str:
    client = _get_anthropic()
    resp = client.messages.create(
        model=ANTHROPIC_MODEL,
        max_tokens=MAX_TOKENS,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = resp.content[0].text
    log.info("Claude simplified %d -> %d chars, stop=%s", len(prompt), len(text), resp.stop_reason)
    return text


def _generate_openai(system: str, prompt: str) -> str:
    client = _get_openai()
    resp = client.chat.completions.create(
        model=OPENAI_MODEL,
        max_tokens=MAX_TOKENS,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
    )
    text = resp.choices[0].message.content or ""
    log.info("OpenAI response (%s): %d chars, finish=%s", OPENAI_MODEL, len(text), resp.choices[0].finish_reason)
    return text


def _generate_azure(system: str, prompt: str) -> str:
    client = _get_azure()
    resp = client.chat.completions.create(
        model=AZURE_OPENAI_DEPLOYMENT_NAME,
        max_tokens=MAX_TOKENS,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
    )
    text = resp.choices[0].message.content or ""
    log.info("Azure response (%s): %d chars", AZURE_OPENAI_DEPLOYMENT_NAME, len(text))
    return text


def _generate_ollama(system: str, prompt: str) -> str:
    client = _get_httpx()
    resp = client.post(
        f"{OLLAMA_URL}/api/chat",
        json={
            "model": OLLAMA_MODEL,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
        },
    )
    resp.raise_for_status()
    text = resp.json()["message"]["content"]
    log.info("Ollama response (%s): %d chars", OLLAMA_MODEL, len(text))
    return text


def mock_simplify(text: str) -> str:
    """Swap formal words for plain ones. Used when no model is configured."""
    for pattern, plain in _MOCK_RE:
        text = pattern.sub(plain, text)
    return text


def _simplify_sync(text: str, provider: str = "") -> str:
    """Blocking simplify for the executor. Routes to one backend."""
    provider = provider or _resolve_provider()
    prompt = USER_PROMPT_TEMPLATE.format(text=text)
    log.info("LLM simplify: provider=%s, %d chars", provider, len(text))
    if provider == "claude":
        return _generate_claude(SYSTEM_PROMPT, prompt)
    elif provider == "openai":
        return _generate_openai(SYSTEM_PROMPT, prompt)
    elif provider == "azure":
        return _generate_azure(SYSTEM_PROMPT, prompt)
    elif provider == "ollama":
        return _generate_ollama(SYSTEM_PROMPT, prompt)
    return mock_simplify(text)


async def simplify(text: str, provider: str = "") -> str:
    """Simplify one chunk of text (runs in thread pool).

    Args:
        text: Chunk text.
        provider: Override provider. Empty = use default.

    Returns:
        The simplified text. Provider errors propagate.
    """
    loop = asyncio.get_running_loop()
    fn = functools.partial(_simplify_sync, text, provider)
    return await loop.run_in_executor(None, fn)


def available_providers() -> list[dict]:
    """Backends the gateway could use, for the health endpoint."""
    providers = []
    if ANTHROPIC_API_KEY:
        providers.append({"id": "claude", "name": f"Claude ({ANTHROPIC_MODEL})"})
    if _azure_configured():
        providers.append({"id": "azure", "name": f"Azure OpenAI ({AZURE_OPENAI_DEPLOYMENT_NAME})"})
    if OPENAI_API_KEY:
        providers.append({"id": "openai", "name": f"OpenAI ({OPENAI_MODEL})"})
    providers.append({"id": "ollama", "name": f"Ollama ({OLLAMA_MODEL})"})
    providers.append({"id": "mock", "name": "Word substitution (no model)"})
    return providers


def is_configured() -> bool:
    """Check if a real model backs the simplifier."""
    provider = _resolve_provider()
    if provider == "claude":
        return bool(ANTHROPIC_API_KEY)
    if provider == "azure":
        return _azure_configured()
    if provider == "openai":
        return bool(OPENAI_API_KEY)
    # Ollama counts as configured once selected; reachability shows up per chunk
    return provider == "ollama"


def get_provider_name() -> str:
    """Name of the backend simplify() will call."""
    return _resolve_provider()
