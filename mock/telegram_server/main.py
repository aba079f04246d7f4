from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from typing import List, Optional
import os

app = FastAPI(title="Mock Telegram Bot API", version="1.0.0")
# Chats listed here answer 403, like a user who blocked the bot
BLOCKED_CHATS = set(filter(None, os.getenv("MOCK_BLOCKED_CHATS", "").split(",")))

sent: List[dict] = []


class SendMessage(BaseModel):
    chat_id: str
    text: str
    disable_web_page_preview: Optional[bool] = None


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/bot{token}/sendMessage")
def send_message(token: str, body: SendMessage):
    if body.chat_id in BLOCKED_CHATS:
        raise HTTPException(status_code=403, detail="Forbidden: bot was blocked by the user")
    sent.append({"chat_id": body.chat_id, "text": body.text})
    return {"ok": True, "result": {"message_id": len(sent), "chat": {"id": body.chat_id}, "text": body.text}}

@app.get("/messages")
def messages(chat_id: Optional[str] = None):
    return [m for m in sent if chat_id is None or m["chat_id"] == chat_id]
