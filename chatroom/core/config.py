# chatroom/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - MESSAGE_STORE the message store backend: "memory", "file" or "redis"
        - MESSAGES_FILE the JSON-lines file used by the "file" backend
        - ROOM_TOPIC the single room every message is ordered and broadcast in
        - SUBSCRIBER_QUEUE_SIZE how many undelivered messages a live client may lag behind
        - STORE_RETRY_ATTEMPTS / STORE_RETRY_BACKOFF retry policy for transient storage errors
    """

    # Load environment variables from the .env file
    load_dotenv()

    MESSAGE_STORE: Literal["memory", "file", "redis"] = (os.getenv("MESSAGE_STORE", "memory"))
    MESSAGES_FILE: str = os.getenv("MESSAGES_FILE", "messages.jsonl")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    ROOM_TOPIC: str = os.getenv("ROOM_TOPIC", "chat:lobby")
    SUBSCRIBER_QUEUE_SIZE: int = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "64"))

    STORE_RETRY_ATTEMPTS: int = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF: float = float(os.getenv("STORE_RETRY_BACKOFF", "0.1"))

settings = Settings()
