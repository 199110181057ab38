"""
Runtime settings for the chat client.

Every value can be overridden through an environment variable of the same
name prefixed with ``CHAT_``; the endpoint is read once at start-up and never
reconfigured afterwards.
"""

import os

# Server endpoint; the username is appended as ``?name=<username>``
SERVER_URL = os.environ.get("CHAT_SERVER_URL", "ws://localhost:6000/ws")
IDENTITY_QUERY_PARAM = "name"

# Transport
RECEIVE_BUFFER_SIZE = int(os.environ.get("CHAT_RECEIVE_BUFFER_SIZE", "1024"))  # bytes per receive call
MAX_MESSAGE_SIZE = int(os.environ.get("CHAT_MAX_MESSAGE_SIZE", str(2 ** 20)))
CONNECT_TIMEOUT = float(os.environ.get("CHAT_CONNECT_TIMEOUT", "10.0"))  # seconds
CLOSE_TIMEOUT = float(os.environ.get("CHAT_CLOSE_TIMEOUT", "3.0"))  # grace period on close

# Feedback / polling
CONNECT_PROGRESS_INTERVAL = 1.0  # one progress tick per second
INPUT_POLL_INTERVAL = 0.2
PUMP_JOIN_TIMEOUT = 2.0

# An unexpected (non-transport) failure while connecting also asks the user
# whether to retry. With False the loop retries straight away.
PROMPT_ON_UNEXPECTED_FAILURE = os.environ.get("CHAT_PROMPT_ON_UNEXPECTED_FAILURE", "1") != "0"

# Logging
LOG_FILE = os.environ.get("CHAT_LOG_FILE", "chat_client.log")
LOG_LEVEL = os.environ.get("CHAT_LOG_LEVEL", "INFO").upper()
