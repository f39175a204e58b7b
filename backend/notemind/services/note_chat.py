"""
Chat about a single note: answer questions with the note as context.
"""

from __future__ import annotations

import logging
from typing import List, Literal

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from .errors import EmptyInputError
from .openai_provider import chat_model, resolve_client

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


class NoteChatService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: OpenAI | None = None,
    ):
        self.client = resolve_client(client, api_key)
        self.model = model or chat_model()

    def reply(self, note_content: str, history: List[ChatMessage], prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise EmptyInputError("Question cannot be empty")

        messages = [
            {
                "role": "system",
                "content": "You are an expert knowledge assistant. Use the note content provided.",
            },
            {"role": "user", "content": f"CONTEXT NOTE CONTENT:\n{note_content}"},
        ]
        for msg in history:
            messages.append(
                {"role": "user" if msg.role == "user" else "assistant", "content": msg.text}
            )
        messages.append({"role": "user", "content": prompt})

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.4,
            )
        except OpenAIError as e:
            logger.error("OpenAI API error during note chat: %s", e)
            raise
        return completion.choices[0].message.content or ""
