"""Shared fixtures for gateway tests."""

from __future__ import annotations

import json

import pytest


@pytest.fixture
def sample_document():
    """An openclaw.json with one of each credential state."""
    return {
        "models": {
            "providers": {
                "openai": {"apiKey": "sk-openai-123456"},
                "anthropic": {"apiKey": "vault-proxy-managed"},
                "ollama": {"apiKey": "ollama-local", "baseUrl": "http://localhost:11434"},
                "groq": {},
            }
        },
        "channels": {
            "telegram": {
                "botToken": "111:AAA",
                "accounts": {"work": {"botToken": "222:BBB"}},
            },
            "slack": {"botToken": "xoxb-1", "appToken": "xapp-1"},
        },
        "gateway": {"port": 18789},
    }


@pytest.fixture
def write_config(openclaw_home):
    """Write a document to the temp openclaw.json and return its path."""

    def _write(document: dict):
        openclaw_home.parent.mkdir(parents=True, exist_ok=True)
        openclaw_home.write_text(json.dumps(document, indent=2) + "\n")
        return openclaw_home

    return _write
